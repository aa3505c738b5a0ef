from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .catalog import (
    DEFAULT_PAGE_SECTIONS,
    PAGE_IDS,
    THEMES,
    default_variant,
    is_allowed_variant,
    is_hero,
)
from .config import Settings
from .errors import NotFound, SchemaViolation, ToolPrecondition
from .events import ReleaseEventPublisher
from .models.drafts import (
    AddPageCall,
    AddSectionCall,
    ApplyThemeCall,
    CreatePreviewCall,
    EnableBlogCall,
    GenerateSectionContentCall,
    PublishSnapshotCall,
    ReorderSectionsCall,
    RewriteSectionContentCall,
    RollbackToSnapshotCall,
    SwitchSectionVariantCall,
)
from .models.site import (
    AdvisoryMode,
    ContentHistoryEntry,
    MutationLogEntry,
    Page,
    ReleaseState,
    Section,
    Site,
    SitePlan,
    Snapshot,
    SnapshotState,
)
from .store import CopilotStore, new_id
from .validators import check_page_sections, validate_section_content, validate_site_plan

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    site: Site
    entry: MutationLogEntry | None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        return self.entry is None


def _page_rank(page_id: str) -> int:
    return PAGE_IDS.index(page_id) if page_id in PAGE_IDS else len(PAGE_IDS)


def _build_sections(page_id: str, section_ids: list[str]) -> list[Section]:
    return [
        Section(
            id=new_id("sec"),
            page_id=page_id,
            section_id=section_id,
            position=index,
            variant_id=default_variant(section_id),
        )
        for index, section_id in enumerate(section_ids)
    ]


def _renumber(page: Page) -> None:
    for index, section in enumerate(page.sections):
        section.position = index


class SiteTools:
    """Schema-checked mutations; each call writes one mutation-log entry with before/after captures."""

    def __init__(
        self,
        store: CopilotStore,
        *,
        settings: Settings,
        events: ReleaseEventPublisher | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._events = events

    def _load(self, site_id: str) -> Site:
        site = self._store.get_site(site_id)
        if site is None:
            raise NotFound("Site not found", context={"site_id": site_id})
        return site

    def _mutate(
        self,
        site_id: str,
        tool: str,
        arguments: dict[str, Any],
        mutation: Callable[[Site], dict[str, Any] | None],
        *,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        site = self._load(site_id)
        before = site.capture()
        payload = mutation(site) or {}
        if dry_run:
            # The loaded site is a copy, so discarding it leaves the stored record untouched
            return ToolResult(site=site, entry=None, payload=payload)
        after = site.capture()
        self._store.save_site(site)
        entry = self._store.append_mutation(
            MutationLogEntry(
                id=new_id("mut"),
                site_id=site.id,
                conversation_id=conversation_id,
                tool=tool,
                arguments=arguments,
                before=before,
                after=after,
            )
        )
        logger.info("Applied tool", extra={"tool": tool, "site_id": site.id, "mutation_id": entry.id})
        return ToolResult(site=site, entry=entry, payload=payload)

    # Structural tools

    def create_site_from_plan(
        self,
        site_id: str,
        plan: SitePlan,
        *,
        blog_presence: str | None = None,
        conversation_id: str | None = None,
    ) -> ToolResult:
        result = validate_site_plan(plan.model_dump(), blog_presence=blog_presence)
        if not result.ok:
            raise SchemaViolation("Site plan is invalid", result.errors)
        validated = result.value

        def mutation(site: Site) -> dict[str, Any]:
            if site.pages:
                raise ToolPrecondition("Site already initialized", tool="createSiteFromPlan")
            for page_id in sorted(validated.pages, key=_page_rank):
                page = validated.pages[page_id]
                site.pages.append(
                    Page(
                        id=new_id("page"),
                        page_id=page_id,
                        goal=page.goal,
                        sections=_build_sections(page_id, list(page.sections)),
                    )
                )
            return {"pages": [page.page_id for page in site.pages]}

        return self._mutate(
            site_id,
            "createSiteFromPlan",
            {"plan": validated.model_dump()},
            mutation,
            conversation_id=conversation_id,
        )

    def _insert_page(self, site: Site, page_id: str, goal: str, sections: list[str], blog_presence: str | None) -> Page:
        if site.page(page_id):
            raise ToolPrecondition("Page already exists", tool="addPage", context={"page_id": page_id})
        result = validate_site_plan(
            {"pages": {page_id: {"goal": goal, "sections": sections}}},
            blog_presence=blog_presence,
        )
        if not result.ok:
            raise SchemaViolation("Page is invalid", result.errors)
        page = Page(id=new_id("page"), page_id=page_id, goal=goal, sections=_build_sections(page_id, sections))
        site.pages.append(page)
        site.pages.sort(key=lambda p: _page_rank(p.page_id))
        return page

    def add_page(
        self,
        site_id: str,
        *,
        page_id: str,
        goal: str,
        sections: list[str],
        blog_presence: str | None = None,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        def mutation(site: Site) -> dict[str, Any]:
            page = self._insert_page(site, page_id, goal, list(sections), blog_presence)
            return {"page_id": page.page_id}

        return self._mutate(
            site_id,
            "addPage",
            {"page_id": page_id, "goal": goal, "sections": list(sections)},
            mutation,
            conversation_id=conversation_id,
            dry_run=dry_run,
        )

    def add_section(
        self,
        site_id: str,
        *,
        page_id: str,
        section_id: str,
        position: int | None = None,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        def mutation(site: Site) -> dict[str, Any]:
            page = site.page(page_id)
            if page is None:
                raise ToolPrecondition("Page not found", tool="addSection", context={"page_id": page_id})
            if page.find(section_id):
                raise ToolPrecondition("Section already exists", tool="addSection", context={"section_id": section_id})

            order = page.section_ids()
            if is_hero(section_id):
                index = 0
            elif position is not None:
                index = min(position, len(order))
            elif "ctaPrimary" in order:
                index = order.index("ctaPrimary")
            else:
                index = len(order)
            order.insert(index, section_id)
            errors = check_page_sections(page_id, order)
            if errors:
                raise SchemaViolation("Section order is invalid", errors)

            section = _build_sections(page_id, [section_id])[0]
            page.sections.insert(index, section)
            _renumber(page)
            return {"section_instance_id": section.id}

        return self._mutate(
            site_id,
            "addSection",
            {"page_id": page_id, "section_id": section_id, "position": position},
            mutation,
            conversation_id=conversation_id,
            dry_run=dry_run,
        )

    def reorder_sections(
        self,
        site_id: str,
        *,
        page_id: str,
        ordered_section_ids: list[str],
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        def mutation(site: Site) -> None:
            page = site.page(page_id)
            if page is None:
                raise ToolPrecondition("Page not found", tool="reorderSections", context={"page_id": page_id})
            current = page.section_ids()
            if len(set(ordered_section_ids)) != len(ordered_section_ids):
                raise SchemaViolation("Reorder contains duplicate sections", [f"{page_id} sections must be unique."])
            if sorted(ordered_section_ids) != sorted(current):
                raise SchemaViolation(
                    "Reorder must list exactly the page's current sections",
                    [f"Expected: {', '.join(current)}"],
                )
            errors = check_page_sections(page_id, ordered_section_ids)
            if errors:
                raise SchemaViolation("Section order is invalid", errors)
            by_type = {section.section_id: section for section in page.sections}
            page.sections = [by_type[section_id] for section_id in ordered_section_ids]
            _renumber(page)

        return self._mutate(
            site_id,
            "reorderSections",
            {"page_id": page_id, "ordered_section_ids": list(ordered_section_ids)},
            mutation,
            conversation_id=conversation_id,
            dry_run=dry_run,
        )

    def enable_blog(
        self,
        site_id: str,
        *,
        blog_presence: str | None = None,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        def mutation(site: Site) -> dict[str, Any]:
            if blog_presence == "no":
                raise ToolPrecondition("Blog not allowed", tool="enableBlog")
            page = self._insert_page(site, "blog", "education", list(DEFAULT_PAGE_SECTIONS["blog"]), blog_presence)
            return {"page_id": page.page_id}

        return self._mutate(site_id, "enableBlog", {}, mutation, conversation_id=conversation_id, dry_run=dry_run)

    # Presentation tools

    def apply_theme(
        self,
        site_id: str,
        *,
        theme_id: str,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        def mutation(site: Site) -> None:
            if theme_id not in THEMES:
                raise SchemaViolation("Unknown theme", [f"Unknown theme: {theme_id}"])
            site.theme_id = theme_id

        return self._mutate(
            site_id,
            "applyTheme",
            {"theme_id": theme_id},
            mutation,
            conversation_id=conversation_id,
            dry_run=dry_run,
        )

    def switch_section_variant(
        self,
        site_id: str,
        *,
        section_instance_id: str,
        variant_id: str,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        def mutation(site: Site) -> None:
            found = site.section(section_instance_id)
            if found is None:
                raise ToolPrecondition("Section not found", tool="switchSectionVariant")
            _, section = found
            if not is_allowed_variant(section.section_id, variant_id):
                raise SchemaViolation("Variant not allowed", [f"{section.section_id} has no variant {variant_id}"])
            section.variant_id = variant_id

        return self._mutate(
            site_id,
            "switchSectionVariant",
            {"section_instance_id": section_instance_id, "variant_id": variant_id},
            mutation,
            conversation_id=conversation_id,
            dry_run=dry_run,
        )

    # Content tools

    def apply_section_content(
        self,
        site_id: str,
        *,
        tool: str,
        section_instance_id: str,
        content: dict[str, Any],
        instruction: str | None = None,
        conversation_id: str | None = None,
    ) -> ToolResult:
        def mutation(site: Site) -> dict[str, Any]:
            found = site.section(section_instance_id)
            if found is None:
                raise ToolPrecondition("Section not found", tool=tool)
            _, section = found
            result = validate_section_content(section.section_id, content)
            if not result.ok:
                raise SchemaViolation("Content is invalid", result.errors)
            section.content = result.value
            return {"section_instance_id": section.id, "content": result.value}

        result = self._mutate(
            site_id,
            tool,
            {"section_instance_id": section_instance_id, "content": content, "instruction": instruction},
            mutation,
            conversation_id=conversation_id,
        )
        self._store.add_content_history(
            ContentHistoryEntry(
                id=new_id("hist"),
                site_id=site_id,
                section_instance_id=section_instance_id,
                content=result.payload["content"],
                status="accepted",
                instruction=instruction,
            )
        )
        return result

    def record_rejected_content(
        self,
        site_id: str,
        *,
        section_instance_id: str,
        content: dict[str, Any],
        instruction: str | None = None,
    ) -> ContentHistoryEntry:
        return self._store.add_content_history(
            ContentHistoryEntry(
                id=new_id("hist"),
                site_id=site_id,
                section_instance_id=section_instance_id,
                content=content,
                status="rejected",
                instruction=instruction,
            )
        )

    def undo_section_content(
        self,
        site_id: str,
        *,
        section_instance_id: str,
        conversation_id: str | None = None,
    ) -> ToolResult:
        accepted = [
            entry
            for entry in self._store.list_content_history(site_id, section_instance_id)
            if entry.status == "accepted"
        ]
        if len(accepted) < 2:
            raise ToolPrecondition("Nothing to undo.", tool="undoSectionContent")
        previous = accepted[-2]

        def mutation(site: Site) -> dict[str, Any]:
            found = site.section(section_instance_id)
            if found is None:
                raise ToolPrecondition("Section not found", tool="undoSectionContent")
            found[1].content = dict(previous.content)
            return {"section_instance_id": section_instance_id, "content": previous.content}

        result = self._mutate(
            site_id,
            "undoSectionContent",
            {"section_instance_id": section_instance_id},
            mutation,
            conversation_id=conversation_id,
        )
        self._store.add_content_history(
            ContentHistoryEntry(
                id=new_id("hist"),
                site_id=site_id,
                section_instance_id=section_instance_id,
                content=previous.content,
                status="accepted",
                instruction="UNDO",
                reason="Reverted to previous accepted content",
            )
        )
        return result

    # Release tools

    def create_preview(self, site_id: str, *, label: str | None = None, conversation_id: str | None = None) -> ToolResult:
        def mutation(site: Site) -> dict[str, Any]:
            snapshot = self._store.add_snapshot(
                Snapshot(
                    id=new_id("snap"),
                    site_id=site.id,
                    state=SnapshotState.preview,
                    label=label,
                    data=site.capture(),
                )
            )
            if site.release_state != ReleaseState.published:
                site.release_state = ReleaseState.preview
            return {"snapshot_id": snapshot.id, "preview_url": self._settings.preview_url(snapshot.id)}

        return self._mutate(site_id, "createPreview", {"label": label}, mutation, conversation_id=conversation_id)

    def _site_snapshot(self, site_id: str, snapshot_id: str) -> Snapshot:
        snapshot = self._store.get_snapshot(snapshot_id)
        if snapshot is None or snapshot.site_id != site_id:
            raise NotFound("Snapshot not found", context={"snapshot_id": snapshot_id})
        return snapshot

    def latest_preview(self, site_id: str) -> Snapshot | None:
        previews = [s for s in self._store.list_snapshots(site_id) if s.state == SnapshotState.preview]
        return previews[-1] if previews else None

    def publish_snapshot(
        self,
        site_id: str,
        *,
        snapshot_id: str | None = None,
        conversation_id: str | None = None,
    ) -> ToolResult:
        source = self._site_snapshot(site_id, snapshot_id) if snapshot_id else self.latest_preview(site_id)
        if source is None:
            raise ToolPrecondition("Create a preview before publishing.", tool="publishSnapshot")
        if source.state != SnapshotState.preview:
            raise ToolPrecondition(
                "Only a preview snapshot can be published.",
                tool="publishSnapshot",
                context={"snapshot_id": source.id},
            )

        def mutation(site: Site) -> dict[str, Any]:
            published = self._store.add_snapshot(
                Snapshot(
                    id=new_id("snap"),
                    site_id=site.id,
                    state=SnapshotState.published,
                    label=source.label,
                    data=dict(source.data),
                    source_snapshot_id=source.id,
                )
            )
            site.published_snapshot_id = published.id
            site.release_state = ReleaseState.published
            return {"snapshot_id": published.id, "source_snapshot_id": source.id}

        result = self._mutate(
            site_id,
            "publishSnapshot",
            {"snapshot_id": source.id},
            mutation,
            conversation_id=conversation_id,
        )
        if self._events:
            self._events.publish_release(site_id=site_id, snapshot_id=result.payload["snapshot_id"], action="published")
        return result

    def rollback_to_snapshot(
        self,
        site_id: str,
        *,
        snapshot_id: str,
        conversation_id: str | None = None,
    ) -> ToolResult:
        target = self._site_snapshot(site_id, snapshot_id)
        if target.state != SnapshotState.published:
            raise ToolPrecondition("Snapshot not published", tool="rollbackToSnapshot")

        def mutation(site: Site) -> dict[str, Any]:
            if site.published_snapshot_id == target.id:
                raise ToolPrecondition("That snapshot is already live.", tool="rollbackToSnapshot")
            site.pages = [Page.model_validate(page) for page in target.data.get("pages", [])]
            site.theme_id = target.data.get("theme_id")
            site.published_snapshot_id = target.id
            site.release_state = ReleaseState.published
            return {"snapshot_id": target.id}

        result = self._mutate(
            site_id,
            "rollbackToSnapshot",
            {"snapshot_id": snapshot_id},
            mutation,
            conversation_id=conversation_id,
        )
        if self._events:
            self._events.publish_release(site_id=site_id, snapshot_id=target.id, action="rolled_back")
        return result

    # Settings

    def set_advisory_mode(
        self,
        site_id: str,
        *,
        mode: AdvisoryMode,
        conversation_id: str | None = None,
    ) -> ToolResult:
        def mutation(site: Site) -> None:
            site.advisory_mode = mode

        return self._mutate(site_id, "setAdvisoryMode", {"mode": mode.value}, mutation, conversation_id=conversation_id)

    def apply_call(
        self,
        site_id: str,
        call: Any,
        *,
        blog_presence: str | None = None,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        """Dispatch a validated tool call. Release and content calls do not support ``dry_run``."""
        args = call.arguments
        common = {"conversation_id": conversation_id}
        if isinstance(call, AddPageCall):
            return self.add_page(
                site_id,
                page_id=args.page_id,
                goal=args.goal,
                sections=args.sections,
                blog_presence=blog_presence,
                dry_run=dry_run,
                **common,
            )
        if isinstance(call, AddSectionCall):
            return self.add_section(
                site_id,
                page_id=args.page_id,
                section_id=args.section_id,
                position=args.position,
                dry_run=dry_run,
                **common,
            )
        if isinstance(call, ReorderSectionsCall):
            return self.reorder_sections(
                site_id,
                page_id=args.page_id,
                ordered_section_ids=args.ordered_section_ids,
                dry_run=dry_run,
                **common,
            )
        if isinstance(call, EnableBlogCall):
            return self.enable_blog(site_id, blog_presence=blog_presence, dry_run=dry_run, **common)
        if isinstance(call, ApplyThemeCall):
            return self.apply_theme(site_id, theme_id=args.theme_id, dry_run=dry_run, **common)
        if isinstance(call, SwitchSectionVariantCall):
            return self.switch_section_variant(
                site_id,
                section_instance_id=args.section_instance_id,
                variant_id=args.variant_id,
                dry_run=dry_run,
                **common,
            )
        if dry_run:
            raise ToolPrecondition("Dry run not supported", tool=call.tool)
        if isinstance(call, (GenerateSectionContentCall, RewriteSectionContentCall)):
            return self.apply_section_content(
                site_id,
                tool=call.tool,
                section_instance_id=args.section_instance_id,
                content=args.content,
                instruction=args.instruction,
                **common,
            )
        if isinstance(call, CreatePreviewCall):
            return self.create_preview(site_id, label=args.label, **common)
        if isinstance(call, PublishSnapshotCall):
            return self.publish_snapshot(site_id, snapshot_id=args.snapshot_id, **common)
        if isinstance(call, RollbackToSnapshotCall):
            return self.rollback_to_snapshot(site_id, snapshot_id=args.snapshot_id, **common)
        raise ToolPrecondition("Unknown tool", tool=getattr(call, "tool", None))


__all__ = ["SiteTools", "ToolResult"]
