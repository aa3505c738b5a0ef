from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .recommendation import Recommendation


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AddPageArgs(_Arguments):
    page_id: str
    goal: str
    sections: list[str]


class AddSectionArgs(_Arguments):
    page_id: str
    section_id: str
    position: int | None = Field(default=None, ge=0)


class ReorderSectionsArgs(_Arguments):
    page_id: str
    ordered_section_ids: list[str]


class EmptyArgs(_Arguments):
    pass


class ApplyThemeArgs(_Arguments):
    theme_id: str


class SwitchSectionVariantArgs(_Arguments):
    section_instance_id: str
    variant_id: str


class SectionContentArgs(_Arguments):
    section_instance_id: str
    content: dict[str, Any]
    instruction: str | None = None


class CreatePreviewArgs(_Arguments):
    label: str | None = None


class PublishSnapshotArgs(_Arguments):
    snapshot_id: str | None = None


class RollbackArgs(_Arguments):
    snapshot_id: str


class AddPageCall(BaseModel):
    tool: Literal["addPage"] = "addPage"
    arguments: AddPageArgs


class AddSectionCall(BaseModel):
    tool: Literal["addSection"] = "addSection"
    arguments: AddSectionArgs


class ReorderSectionsCall(BaseModel):
    tool: Literal["reorderSections"] = "reorderSections"
    arguments: ReorderSectionsArgs


class EnableBlogCall(BaseModel):
    tool: Literal["enableBlog"] = "enableBlog"
    arguments: EmptyArgs = Field(default_factory=EmptyArgs)


class ApplyThemeCall(BaseModel):
    tool: Literal["applyTheme"] = "applyTheme"
    arguments: ApplyThemeArgs


class SwitchSectionVariantCall(BaseModel):
    tool: Literal["switchSectionVariant"] = "switchSectionVariant"
    arguments: SwitchSectionVariantArgs


class GenerateSectionContentCall(BaseModel):
    tool: Literal["generateSectionContent"] = "generateSectionContent"
    arguments: SectionContentArgs


class RewriteSectionContentCall(BaseModel):
    tool: Literal["rewriteSectionContent"] = "rewriteSectionContent"
    arguments: SectionContentArgs


class CreatePreviewCall(BaseModel):
    tool: Literal["createPreview"] = "createPreview"
    arguments: CreatePreviewArgs = Field(default_factory=CreatePreviewArgs)


class PublishSnapshotCall(BaseModel):
    tool: Literal["publishSnapshot"] = "publishSnapshot"
    arguments: PublishSnapshotArgs = Field(default_factory=PublishSnapshotArgs)


class RollbackToSnapshotCall(BaseModel):
    tool: Literal["rollbackToSnapshot"] = "rollbackToSnapshot"
    arguments: RollbackArgs


class NoToolCall(BaseModel):
    tool: Literal["none"] = "none"
    arguments: EmptyArgs = Field(default_factory=EmptyArgs)


StructuralCall = Annotated[
    Union[AddPageCall, AddSectionCall, ReorderSectionsCall, EnableBlogCall],
    Field(discriminator="tool"),
]
PresentationCall = Annotated[
    Union[ApplyThemeCall, SwitchSectionVariantCall],
    Field(discriminator="tool"),
]
ContentCall = Annotated[
    Union[GenerateSectionContentCall, RewriteSectionContentCall],
    Field(discriminator="tool"),
]
ReleaseCall = Annotated[
    Union[CreatePreviewCall, PublishSnapshotCall, RollbackToSnapshotCall],
    Field(discriminator="tool"),
]
ToolCall = Annotated[
    Union[
        AddPageCall,
        AddSectionCall,
        ReorderSectionsCall,
        EnableBlogCall,
        ApplyThemeCall,
        SwitchSectionVariantCall,
        GenerateSectionContentCall,
        RewriteSectionContentCall,
        CreatePreviewCall,
        PublishSnapshotCall,
        RollbackToSnapshotCall,
        NoToolCall,
    ],
    Field(discriminator="tool"),
]

TOOL_CALL_ADAPTER: TypeAdapter[Any] = TypeAdapter(ToolCall)


class DraftKind(str, Enum):
    content = "content"
    presentation = "presentation"
    release = "release"
    recommendation = "recommendation"


class ContentDraft(BaseModel):
    kind: Literal["content"] = "content"
    call: ContentCall
    page_id: str
    section_id: str
    rationale: str

    @property
    def tool(self) -> str:
        return self.call.tool


class PresentationDraft(BaseModel):
    kind: Literal["presentation"] = "presentation"
    call: PresentationCall
    rationale: str

    @property
    def tool(self) -> str:
        return self.call.tool


class ReleaseDraft(BaseModel):
    kind: Literal["release"] = "release"
    call: ReleaseCall
    rationale: str

    @property
    def tool(self) -> str:
        return self.call.tool


class RecommendationDraft(BaseModel):
    kind: Literal["recommendation"] = "recommendation"
    recommendations: list[Recommendation]
    record_ids: list[str] = Field(default_factory=list)
    rationale: str = ""

    @property
    def tool(self) -> str:
        return "selectRecommendation"

    def actionable(self) -> list[Recommendation]:
        return [rec for rec in self.recommendations if rec.actionable]

    def leave_as_is(self) -> Recommendation | None:
        return next((rec for rec in self.recommendations if not rec.actionable), None)


Draft = Annotated[
    Union[ContentDraft, PresentationDraft, ReleaseDraft, RecommendationDraft],
    Field(discriminator="kind"),
]

DRAFT_ADAPTER: TypeAdapter[Any] = TypeAdapter(Draft)


def serialize_draft(draft: ContentDraft | PresentationDraft | ReleaseDraft | RecommendationDraft) -> dict[str, Any]:
    return DRAFT_ADAPTER.dump_python(draft, mode="json")


def deserialize_draft(data: dict[str, Any]) -> ContentDraft | PresentationDraft | ReleaseDraft | RecommendationDraft:
    return DRAFT_ADAPTER.validate_python(data)


def parse_tool_call(data: dict[str, Any]) -> Any:
    return TOOL_CALL_ADAPTER.validate_python(data)


__all__ = [
    "AddPageArgs",
    "AddPageCall",
    "AddSectionArgs",
    "AddSectionCall",
    "ApplyThemeArgs",
    "ApplyThemeCall",
    "ContentCall",
    "ContentDraft",
    "CreatePreviewArgs",
    "CreatePreviewCall",
    "DRAFT_ADAPTER",
    "Draft",
    "DraftKind",
    "EmptyArgs",
    "EnableBlogCall",
    "GenerateSectionContentCall",
    "NoToolCall",
    "PresentationCall",
    "PresentationDraft",
    "PublishSnapshotArgs",
    "PublishSnapshotCall",
    "RecommendationDraft",
    "ReleaseCall",
    "ReleaseDraft",
    "ReorderSectionsArgs",
    "ReorderSectionsCall",
    "RewriteSectionContentCall",
    "RollbackArgs",
    "RollbackToSnapshotCall",
    "SectionContentArgs",
    "StructuralCall",
    "SwitchSectionVariantArgs",
    "SwitchSectionVariantCall",
    "ToolCall",
    "TOOL_CALL_ADAPTER",
    "parse_tool_call",
    "serialize_draft",
    "deserialize_draft",
]
