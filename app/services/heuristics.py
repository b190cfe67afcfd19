"""Keyword heuristics for provisional difficulty labels.

Assigned at ingestion so freshly ingested records carry labels before the
LLM classifies them; enrichment overwrites all three.
"""

from typing import Optional, Sequence

ADVANCED_KEYWORDS = (
    "advanced",
    "expert",
    "professional",
    "enterprise",
    "production",
    "distributed",
    "microservices",
    "kubernetes",
    "docker",
    "cloud",
)
BEGINNER_KEYWORDS = (
    "beginner",
    "tutorial",
    "learning",
    "starter",
    "simple",
    "basic",
    "intro",
    "getting-started",
)
ADVANCED_LANGUAGES = {"Rust", "C++", "C", "Assembly", "Haskell"}

DOCS_TOPICS = {"documentation", "docs", "tutorial", "guide"}

EASY_DEPLOY_LANGUAGES = {"javascript", "typescript", "python", "ruby", "php"}
HARD_DEPLOY_LANGUAGES = {"c", "c++", "rust", "assembly"}
CONTAINER_TOPICS = ("docker", "kubernetes", "serverless")


def determine_experience_level(
    languages: Sequence[str],
    topics: Sequence[str],
    description: Optional[str],
) -> str:
    text = f"{' '.join(topics)} {description or ''}".lower()

    if any(keyword in text for keyword in ADVANCED_KEYWORDS):
        return "advanced"
    if any(keyword in text for keyword in BEGINNER_KEYWORDS):
        return "beginner"
    if any(language in ADVANCED_LANGUAGES for language in languages):
        return "advanced"
    return "intermediate"


def determine_usability_level(has_readme: bool, has_homepage: bool, topics: Sequence[str]) -> str:
    if not has_readme:
        return "difficult"
    if has_homepage or any(topic.lower() in DOCS_TOPICS for topic in topics):
        return "easy"
    return "intermediate"


def determine_deployment_level(languages: Sequence[str], topics: Sequence[str]) -> str:
    topics_text = " ".join(topics).lower()
    if any(keyword in topics_text for keyword in CONTAINER_TOPICS):
        return "intermediate"

    lowered = [language.lower() for language in languages]
    if any(language in EASY_DEPLOY_LANGUAGES for language in lowered):
        return "easy"
    if any(language in HARD_DEPLOY_LANGUAGES for language in lowered):
        return "expert"
    return "advanced"
