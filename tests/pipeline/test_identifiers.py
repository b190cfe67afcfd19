import pytest

from app.services.identifiers import parse_repository_identifier, validate_repository_path
from app.services.pipeline_exceptions import InvalidIdentifier, PermanentPipelineError


@pytest.mark.parametrize(
    "raw",
    [
        "acme/widget",
        "https://github.com/acme/widget",
        "http://www.github.com/acme/widget",
        "github.com/acme/widget",
        "https://github.com/acme/widget/",
        "https://github.com/acme/widget.git",
        "  acme/widget  ",
    ],
)
def test_parse_accepts_known_identifier_shapes(raw: str) -> None:
    ref = parse_repository_identifier(raw)

    assert ref.owner == "acme"
    assert ref.repo == "widget"
    assert ref.identifier == "acme/widget"
    assert ref.html_url == "https://github.com/acme/widget"


@pytest.mark.parametrize(
    "raw",
    ["", "acme", "acme/", "/widget", "acme/widget/tree/main", "https://github.com/acme", "a//b"],
)
def test_parse_rejects_anything_but_two_segments(raw: str) -> None:
    with pytest.raises(InvalidIdentifier) as excinfo:
        parse_repository_identifier(raw)

    assert isinstance(excinfo.value, PermanentPipelineError)


def test_validate_repository_path_filters_scraped_hrefs() -> None:
    assert validate_repository_path("/acme/widget") is True
    assert validate_repository_path("github.com/acme/widget") is True
    assert validate_repository_path("httpie/cli") is True

    assert validate_repository_path("") is False
    assert validate_repository_path("/acme") is False
    assert validate_repository_path("/acme/widget/issues") is False
    assert validate_repository_path("https://github.com/acme/widget") is False
    assert validate_repository_path("http:acme/widget") is False
