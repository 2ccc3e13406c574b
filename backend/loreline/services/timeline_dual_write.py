"""Mirror domain node writes into the state-change ledger."""

import json
from typing import Any

from loreline.logging import get_logger
from loreline.models import DualWriteResult, SubjectType, TimelineStateChangeInput, TimelineWriteContext
from loreline.services.field_path import flatten_state
from loreline.services.timeline_state_changes import TimelineStateChangeService

logger = get_logger("services.timeline_dual_write")

IGNORED_ROOT_FIELDS = {"id", "createdAt", "updatedAt"}
DUAL_WRITE_CHANGE_TYPE = "set"
DUAL_WRITE_NOTES = "auto dual-write"
DUAL_WRITE_TAG = "dual-write"


def trackable_fields(document: dict[str, Any]) -> dict[str, Any]:
    """Flatten a node document into field paths, skipping identity and timestamps."""
    root = {key: value for key, value in document.items() if key not in IGNORED_ROOT_FIELDS}
    return flatten_state(root)


class TimelineDualWriteService:
    """Best-effort: failures are counted and logged, never raised."""

    def __init__(self, state_changes: TimelineStateChangeService, enabled: bool):
        self.state_changes = state_changes
        self.enabled = enabled

    async def record_node_write(
        self,
        db_name: str,
        subject_type: SubjectType,
        subject_id: str,
        document: dict[str, Any],
        context: TimelineWriteContext | None,
    ) -> DualWriteResult:
        """
        Write one ``set`` state change per field of ``document``.

        For creates pass the whole node document; for updates pass only the payload.

        :param db_name: Logical database name
        :type db_name: str
        :param subject_type: Kind of the written node
        :type subject_type: SubjectType
        :param subject_id: Id of the written node
        :type subject_id: str
        :param document: Field values to record
        :type document: dict[str, Any]
        :param context: Timeline coordinates from the request, if any
        :type context: TimelineWriteContext | None
        :return: Counts of written and skipped fields, or the reason nothing was written
        :rtype: DualWriteResult
        """
        if not self.enabled:
            return DualWriteResult(reason="dual-write-disabled")
        if context is None:
            return DualWriteResult(reason="missing-timeline-context-headers")
        fields = trackable_fields(document)
        if not fields:
            return DualWriteResult(reason="no-trackable-fields")

        result = DualWriteResult()
        for field_path, value in fields.items():
            payload = TimelineStateChangeInput(
                axis_id=context.axis_id,
                era_id=context.era_id,
                segment_id=context.segment_id,
                marker_id=context.marker_id,
                event_id=context.event_id,
                subject_type=subject_type,
                subject_id=subject_id,
                field_path=field_path,
                change_type=DUAL_WRITE_CHANGE_TYPE,
                new_value=json.dumps(value),
                effective_tick=context.tick,
                notes=DUAL_WRITE_NOTES,
                tags=[DUAL_WRITE_TAG],
            )
            try:
                await self.state_changes.create_state_change(db_name, payload)
            except (ValueError, LookupError) as exc:
                result.skipped += 1
                result.errors.append(f"{field_path}: {exc}")
                logger.warning(f"Dual-write skipped {subject_type.value}:{subject_id[:8]} {field_path}: {exc}")
                continue
            except Exception as exc:
                result.skipped += 1
                result.errors.append(f"{field_path}: {exc}")
                logger.exception(f"Dual-write failed {subject_type.value}:{subject_id[:8]} {field_path}")
                continue
            result.written += 1
        return result
