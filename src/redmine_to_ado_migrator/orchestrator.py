"""Migration orchestrator that coordinates source and target systems.

The Migrator class is the central coordinator for migration. It:
1. Manages the flow between SourceReader and TargetWriter
2. Builds and owns the identity map (Redmine id -> work item id)
3. Paces every outbound call through a single Pacer
4. Contains per-record failures and reports them as counters

Migration Flow
--------------
The migration is an explicit state machine:

    IDLE -> FETCHING_SOURCE -> CREATING_NODES -> MIGRATING_NODE_EXTRAS
         -> RESOLVING_RELATIONS -> PERSISTING -> DONE

Any state may end in FAILED on an unrecoverable error.

FETCHING_SOURCE
    - Validate access to the target
    - List issue summaries (paginated by the reader); failure is fatal
    - Drop repeated listings of the same issue, keeping the first
    - Fetch full detail for each issue; vanished issues are skipped

CREATING_NODES
    For each issue, strictly in fetch order:
        a. Transform with the FieldMapper
        b. Create the work item
        c. Record source id -> target id in the identity map
    A rejected create is logged and the issue drops out of the rest of
    the run. Any relation pointing at it is dropped later.

MIGRATING_NODE_EXTRAS
    For each created work item (optionally several at once):
        - Journals become comments, oldest first, one additive call each
        - Attachments are downloaded, uploaded and linked one by one;
          a failing attachment does not stop the others

RESOLVING_RELATIONS
    Starts only once every create has been attempted, since a link needs
    both endpoints. For each issue in fetch order:
        - parent link (child -> parent, Hierarchy-Reverse)
        - typed relations, in the order Redmine lists them
    Endpoints missing from the identity map are skipped, not errors.

PERSISTING
    The identity map is written as a flat JSON object for audit and resume.

Error Handling
--------------
- SourceError/TargetError on a single record, comment, attachment or link:
  logged with the id, counted, run continues
- Failure to list issues or to reach the target: run ends in FAILED
- DuplicateMappingError: orchestration bug, run ends in FAILED
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from .exceptions import MigrationError, SourceError, TargetError
from .field_mapper import HIERARCHY_LINK_TYPE
from .identity_map import IdentityMap
from .journal_formatter import format_journal_as_comment, sort_chronologically
from .models import RelationEdge
from .pacing import NullPacer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from .config import MigrationOptions
    from .field_mapper import FieldMapper
    from .models import SourceRecord
    from .protocols import Pacer, SourceReader, TargetWriter

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


def _drop_repeated_ids(summaries: Sequence[SourceRecord]) -> list[SourceRecord]:
    """Keep only the first listing of each issue id."""
    seen: set[int] = set()
    unique: list[SourceRecord] = []
    for summary in summaries:
        if summary.id in seen:
            logger.warning(f"Redmine issue #{summary.id} was listed more than once, ignoring the repeat")
            continue
        seen.add(summary.id)
        unique.append(summary)
    return unique


class MigrationState(Enum):
    IDLE = "idle"
    FETCHING_SOURCE = "fetching_source"
    CREATING_NODES = "creating_nodes"
    MIGRATING_NODE_EXTRAS = "migrating_node_extras"
    RESOLVING_RELATIONS = "resolving_relations"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Counter:
    """Outcome counts for one kind of migrated object."""

    attempted: int = 0
    created: int = 0
    failed: int = 0
    skipped: int = 0

    def merge(self, other: Counter) -> None:
        self.attempted += other.attempted
        self.created += other.created
        self.failed += other.failed
        self.skipped += other.skipped


@dataclass
class MigrationStats:
    """Statistics collected during migration."""

    details: Counter = field(default_factory=Counter)
    nodes: Counter = field(default_factory=Counter)
    comments: Counter = field(default_factory=Counter)
    attachments: Counter = field(default_factory=Counter)
    links: Counter = field(default_factory=Counter)
    errors: list[str] = field(default_factory=list)

    def merge(self, other: MigrationStats) -> None:
        self.details.merge(other.details)
        self.nodes.merge(other.nodes)
        self.comments.merge(other.comments)
        self.attachments.merge(other.attachments)
        self.links.merge(other.links)
        self.errors.extend(other.errors)

    def counters(self) -> dict[str, Counter]:
        return {
            "issues fetched": self.details,
            "work items": self.nodes,
            "comments": self.comments,
            "attachments": self.attachments,
            "links": self.links,
        }


@dataclass
class MigrationResult:
    """Result of a migration run."""

    success: bool
    state: MigrationState
    stats: MigrationStats
    identity_map: IdentityMap
    mapping_path: Path | None = None
    fatal_error: str | None = None


class Migrator:
    """Orchestrates migration from a SourceReader to a TargetWriter.

    Usage:
        source = RedmineClient(base_url, api_key)
        target = AdoClient(organization, project, pat)
        migrator = Migrator(source, target, FieldMapper(mapping), mapping.options, pacer=Pacer(0.1))
        result = migrator.migrate_all(scope="my-project")

    One Migrator performs one run; the identity map and counters are
    returned in the MigrationResult.
    """

    _source: SourceReader
    _target: TargetWriter
    _mapper: FieldMapper
    _options: MigrationOptions
    _pacer: Pacer
    _state: MigrationState

    def __init__(
        self,
        source: SourceReader,
        target: TargetWriter,
        mapper: FieldMapper,
        options: MigrationOptions,
        *,
        pacer: Pacer | None = None,
    ) -> None:
        self._source = source
        self._target = target
        self._mapper = mapper
        self._options = options
        self._pacer = pacer or NullPacer()
        self._state = MigrationState.IDLE

    @property
    def state(self) -> MigrationState:
        return self._state

    def _transition(self, new_state: MigrationState) -> None:
        logger.debug(f"Migration state: {self._state.value} -> {new_state.value}")
        self._state = new_state

    def migrate_all(
        self,
        *,
        scope: str | None = None,
        resume_from: IdentityMap | None = None,
        mapping_path: str | Path | None = None,
    ) -> MigrationResult:
        """Execute the full migration.

        Args:
            scope: Redmine project identifier to limit the migration to
            resume_from: Identity map of an earlier interrupted run. Issues
                found in it are not created again.
            mapping_path: Where to write the identity map (defaults to the
                ``mapping_file`` option)

        Returns:
            MigrationResult with statistics and the identity map
        """
        if self._state is not MigrationState.IDLE:
            msg = f"Migrator already used (state: {self._state.value})"
            raise MigrationError(msg)

        stats = MigrationStats()
        identity_map = IdentityMap(dict(resume_from.items()) if resume_from is not None else None)
        output_path = Path(mapping_path or self._options.mapping_file)

        try:
            self._transition(MigrationState.FETCHING_SOURCE)
            self._target.validate_access()
            records = self._fetch_records(scope, stats)

            self._transition(MigrationState.CREATING_NODES)
            created = self._create_nodes(records, identity_map, stats)

            self._transition(MigrationState.MIGRATING_NODE_EXTRAS)
            self._migrate_extras(created, identity_map, stats)

            self._transition(MigrationState.RESOLVING_RELATIONS)
            edges = self.resolve_relations(records, identity_map, stats)
            self._create_links(edges, stats)

            self._transition(MigrationState.PERSISTING)
            identity_map.save(output_path)

        except MigrationError as e:
            failed_in = self._state
            self._transition(MigrationState.FAILED)
            logger.exception(f"Migration failed while {failed_in.value}")
            saved_path = self._save_partial_map(identity_map, output_path, failed_in)
            return MigrationResult(
                success=False,
                state=MigrationState.FAILED,
                stats=stats,
                identity_map=identity_map,
                mapping_path=saved_path,
                fatal_error=str(e),
            )
        except Exception:
            self._transition(MigrationState.FAILED)
            raise

        self._transition(MigrationState.DONE)
        logger.info(f"Migration completed: {len(identity_map)} issues mapped")
        return MigrationResult(
            success=True,
            state=MigrationState.DONE,
            stats=stats,
            identity_map=identity_map,
            mapping_path=output_path,
        )

    def migrate_single(self, record_id: int) -> MigrationResult:
        """Migrate one issue with its comments and attachments.

        Relations are not migrated since the other endpoints have no
        mapping, and nothing is persisted.
        """
        if self._state is not MigrationState.IDLE:
            msg = f"Migrator already used (state: {self._state.value})"
            raise MigrationError(msg)

        stats = MigrationStats()
        identity_map = IdentityMap()

        try:
            self._transition(MigrationState.FETCHING_SOURCE)
            self._target.validate_access()
            stats.details.attempted += 1
            record = self._source.get_record_detail(record_id)
            if record is None:
                stats.details.skipped += 1
                msg = f"Redmine issue #{record_id} not found"
                raise SourceError(msg)
            stats.details.created += 1

            self._transition(MigrationState.CREATING_NODES)
            created = self._create_nodes([record], identity_map, stats)

            self._transition(MigrationState.MIGRATING_NODE_EXTRAS)
            self._migrate_extras(created, identity_map, stats)

        except MigrationError as e:
            self._transition(MigrationState.FAILED)
            logger.exception(f"Migration of Redmine issue #{record_id} failed")
            return MigrationResult(
                success=False,
                state=MigrationState.FAILED,
                stats=stats,
                identity_map=identity_map,
                fatal_error=str(e),
            )
        except Exception:
            self._transition(MigrationState.FAILED)
            raise

        self._transition(MigrationState.DONE)
        return MigrationResult(
            success=record_id in identity_map,
            state=MigrationState.DONE,
            stats=stats,
            identity_map=identity_map,
        )

    def _map_in_order(self, func: Callable[[T], MigrationStats], items: Sequence[T]) -> Iterable[MigrationStats]:
        """Apply ``func`` to each item on up to ``concurrency`` threads, keeping input order."""
        if self._options.concurrency <= 1 or len(items) <= 1:
            return map(func, items)
        with ThreadPoolExecutor(max_workers=self._options.concurrency) as executor:
            return list(executor.map(func, items))

    def _fetch_records(self, scope: str | None, stats: MigrationStats) -> list[SourceRecord]:
        """List issues and fetch full detail for each, preserving listing order."""
        summaries = _drop_repeated_ids(self._source.list_records(scope))
        logger.info(f"Fetching detailed information for {len(summaries)} issues...")

        details: list[SourceRecord | None] = [None] * len(summaries)

        def fetch(index_and_summary: tuple[int, SourceRecord]) -> MigrationStats:
            index, summary = index_and_summary
            local = MigrationStats()
            local.details.attempted += 1
            try:
                record = self._source.get_record_detail(summary.id)
            except SourceError as e:
                local.details.failed += 1
                local.errors.append(f"Fetching Redmine issue #{summary.id} failed: {e}")
                logger.warning(f"Failed to fetch Redmine issue #{summary.id}: {e}")
                return local
            finally:
                self._pacer.pace()

            if record is None:
                local.details.skipped += 1
                logger.info(f"Redmine issue #{summary.id} vanished before its details could be fetched, skipping")
            else:
                local.details.created += 1
                details[index] = record
            return local

        for outcome in self._map_in_order(fetch, list(enumerate(summaries))):
            stats.merge(outcome)

        return [record for record in details if record is not None]

    def _create_nodes(
        self,
        records: Sequence[SourceRecord],
        identity_map: IdentityMap,
        stats: MigrationStats,
    ) -> list[SourceRecord]:
        """Create one work item per issue, sequentially and in input order.

        Returns:
            The records whose work items were created in this run
        """
        created: list[SourceRecord] = []
        batch_size = self._options.batch_size
        total = len(records)
        logger.info(f"Migrating {total} issues to Azure DevOps...")

        for batch_start in range(0, total, batch_size):
            for record in records[batch_start : batch_start + batch_size]:
                existing = identity_map.get(record.id)
                if existing is not None:
                    stats.nodes.skipped += 1
                    logger.info(f"Redmine issue #{record.id} already migrated as work item #{existing}, skipping")
                    continue

                stats.nodes.attempted += 1
                work_item_type, fields = self._mapper.transform(record)
                try:
                    target_id = self._target.create_record(work_item_type, fields)
                except TargetError as e:
                    stats.nodes.failed += 1
                    stats.errors.append(f"Creating work item for Redmine issue #{record.id} failed: {e}")
                    logger.error(f"Failed to create work item for Redmine issue #{record.id}: {e}")
                    continue
                finally:
                    self._pacer.pace()

                # DuplicateMappingError propagates: it can only mean an orchestration bug
                identity_map.put(record.id, target_id)
                stats.nodes.created += 1
                created.append(record)
                logger.info(f"Redmine issue #{record.id} -> {work_item_type} #{target_id}: {record.title}")

            logger.info(f"Progress: {min(batch_start + batch_size, total)}/{total} issues processed")

        return created

    def _migrate_extras(
        self,
        created: Sequence[SourceRecord],
        identity_map: IdentityMap,
        stats: MigrationStats,
    ) -> None:
        if not (self._options.migrate_comments or self._options.migrate_attachments):
            logger.info("Comment and attachment migration disabled")
            return

        def migrate_node(record: SourceRecord) -> MigrationStats:
            local = MigrationStats()
            target_id = identity_map.get(record.id)
            if target_id is None:
                return local
            if self._options.migrate_comments:
                self._migrate_comments(record, target_id, local)
            if self._options.migrate_attachments:
                self._migrate_attachments(record, target_id, local)
            return local

        for outcome in self._map_in_order(migrate_node, created):
            stats.merge(outcome)

    def _migrate_comments(self, record: SourceRecord, target_id: int, stats: MigrationStats) -> None:
        """Append each journal as a comment, oldest first."""
        if not record.journals:
            return

        logger.debug(f"Migrating {len(record.journals)} journal entries of Redmine issue #{record.id} as comments")
        for journal in sort_chronologically(record.journals):
            stats.comments.attempted += 1
            try:
                self._target.add_comment(target_id, format_journal_as_comment(journal))
            except TargetError as e:
                stats.comments.failed += 1
                stats.errors.append(f"Comment on work item #{target_id} (Redmine #{record.id}) failed: {e}")
                logger.warning(f"Failed to add comment to work item #{target_id}: {e}")
            else:
                stats.comments.created += 1
            finally:
                self._pacer.pace()

    def _migrate_attachments(self, record: SourceRecord, target_id: int, stats: MigrationStats) -> None:
        """Download, upload and link each attachment; one failure does not stop the rest."""
        if not record.attachments:
            return

        logger.debug(f"Migrating {len(record.attachments)} attachments of Redmine issue #{record.id}")
        for attachment in record.attachments:
            stats.attachments.attempted += 1
            try:
                content = self._source.download_attachment_content(attachment.content_url)
                if not content:
                    stats.attachments.skipped += 1
                    logger.warning(
                        f"Skipping empty or unavailable attachment {attachment.filename} of Redmine issue #{record.id}"
                    )
                    continue

                attachment_url = self._target.upload_attachment(content, attachment.filename)
                self._target.link_attachment(target_id, attachment_url, attachment.filename)
            except (SourceError, TargetError) as e:
                stats.attachments.failed += 1
                stats.errors.append(f"Attachment {attachment.filename} of Redmine issue #{record.id} failed: {e}")
                logger.error(f"Error migrating attachment {attachment.filename}: {e}")
            else:
                stats.attachments.created += 1
                logger.debug(f"Attached {attachment.filename} to work item #{target_id}")
            finally:
                self._pacer.pace()

    def resolve_relations(
        self,
        records: Sequence[SourceRecord],
        identity_map: IdentityMap,
        stats: MigrationStats,
    ) -> list[RelationEdge]:
        """Turn parent ids and relations into links between work items.

        Edges whose endpoints are not in the identity map are dropped and
        counted as skipped. Redmine reports a relation on both of its
        issues; it is resolved once, oriented from ``issue_id`` to
        ``issue_to_id``.
        """
        edges: list[RelationEdge] = []
        seen_relations: set[tuple[int, int, str]] = set()

        for record in records:
            self_target = identity_map.get(record.id)
            if self_target is None:
                continue

            if self._options.migrate_subtasks and record.parent_id is not None:
                parent_target = identity_map.get(record.parent_id)
                if parent_target is None:
                    stats.links.skipped += 1
                    logger.info(
                        f"Parent #{record.parent_id} of Redmine issue #{record.id} was not migrated, skipping hierarchy link"
                    )
                else:
                    edges.append(
                        RelationEdge(
                            source_id=record.id,
                            from_target=self_target,
                            to_target=parent_target,
                            link_type=HIERARCHY_LINK_TYPE,
                            comment="Parent-Child relationship from Redmine",
                        )
                    )

            if not self._options.migrate_relations:
                continue

            for relation in record.relations:
                key = (relation.issue_id, relation.issue_to_id, relation.relation_type)
                if key in seen_relations:
                    continue
                seen_relations.add(key)

                other_id = relation.other_id(record.id)
                other_target = identity_map.get(other_id)
                if other_target is None:
                    stats.links.skipped += 1
                    logger.info(
                        f"Redmine issue #{other_id} related to #{record.id} ({relation.relation_type}) "
                        "was not migrated, skipping link"
                    )
                    continue

                if record.id == relation.issue_id:
                    from_target, to_target = self_target, other_target
                else:
                    from_target, to_target = other_target, self_target

                edges.append(
                    RelationEdge(
                        source_id=record.id,
                        from_target=from_target,
                        to_target=to_target,
                        link_type=self._mapper.map_relation_kind(relation.relation_type),
                        comment=f"{relation.relation_type} relationship from Redmine",
                    )
                )

        return edges

    def _create_links(self, edges: Sequence[RelationEdge], stats: MigrationStats) -> None:
        logger.info(f"Creating {len(edges)} links...")
        for edge in edges:
            if edge.from_target == edge.to_target:
                stats.links.skipped += 1
                logger.warning(
                    f"Skipping self-link on work item #{edge.from_target} (Redmine #{edge.source_id}, {edge.link_type})"
                )
                continue

            stats.links.attempted += 1
            try:
                created = self._target.create_link(edge.from_target, edge.to_target, edge.link_type, edge.comment)
            except TargetError as e:
                stats.links.failed += 1
                stats.errors.append(
                    f"Link #{edge.from_target} -> #{edge.to_target} ({edge.link_type}) failed: {e}"
                )
                logger.error(f"Failed to create link #{edge.from_target} -> #{edge.to_target}: {e}")
            else:
                if created:
                    stats.links.created += 1
                else:
                    stats.links.skipped += 1
            finally:
                self._pacer.pace()

    @staticmethod
    def _save_partial_map(
        identity_map: IdentityMap,
        output_path: Path,
        failed_in: MigrationState,
    ) -> Path | None:
        """Keep the mappings of a failed run so it can be resumed without duplicate work items."""
        if len(identity_map) == 0 or failed_in is MigrationState.PERSISTING:
            return None
        try:
            return identity_map.save(output_path)
        except MigrationError:
            logger.exception("Could not save the identity map of the failed run")
            return None
