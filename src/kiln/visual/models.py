"""Result of a headless-browser probe of an artifact's generated page."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def _either_case(name: str) -> AliasChoices:
    head, *rest = name.split("_")
    return AliasChoices(name, head + "".join(part.title() for part in rest))


class VisualResult(BaseModel):
    """What a browser probe observed when a first-time user opened the artifact page.

    Probe replies may use snake_case or camelCase keys.
    """

    model_config = ConfigDict(frozen=True)

    page_loaded: bool = Field(default=False, validation_alias=_either_case("page_loaded"))
    form_present: bool = Field(default=False, validation_alias=_either_case("form_present"))
    field_count: int = Field(default=0, ge=0, validation_alias=_either_case("field_count"))
    example_count: int = Field(default=0, ge=0, validation_alias=_either_case("example_count"))
    example_exercised: bool = Field(default=False, validation_alias=_either_case("example_exercised"))
    result_visible: bool = Field(default=False, validation_alias=_either_case("result_visible"))
    issues: list[str] = Field(default_factory=list)
    form_snapshot: str = Field(
        default="",
        validation_alias=_either_case("form_snapshot"),
        description="Short text/accessibility snapshot of the form",
    )
    result_snapshot: str = Field(
        default="",
        validation_alias=_either_case("result_snapshot"),
        description="Short snapshot of the result region",
    )

    def snapshots(self) -> dict[str, str]:
        return {"form": self.form_snapshot, "result": self.result_snapshot}
