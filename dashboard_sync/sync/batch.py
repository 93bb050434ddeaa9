"""
Batched remote writes with bounded concurrency.

Pending writes are split into a create group and an update group. Each
group runs in sequential windows of at most max_concurrency requests,
and every item yields exactly one OperationResult: one failure never
cancels or hides its siblings.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from dashboard_sync.errors import SyncError, classify
from dashboard_sync.sync.records import (
    LinkedId,
    LocalRecord,
    RemoteRecord,
    parse_record_id,
)

# Maximum concurrent in-flight requests per window
MAX_BATCH_SIZE = 10

logger = logging.getLogger(__name__)

PayloadBuilder = Callable[[LocalRecord, bool], dict[str, Any]]


@dataclass
class PendingOperation:
    """
    A remote write waiting to be executed.

    Attributes:
        item_id: Local id of the record being written
        payload: Provider-shaped request body
        remote_id: Remote id for updates, None for creates
    """

    item_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    remote_id: str | None = None


@dataclass
class OperationResult:
    """Outcome of one pending operation."""

    item_id: str
    success: bool
    remote_id: str | None = None
    error: SyncError | None = None


def group_by_operation(
    records: list[LocalRecord],
    provider_tag: str,
    to_payload: PayloadBuilder,
) -> tuple[list[PendingOperation], list[PendingOperation]]:
    """
    Split records into create and update operations.

    A record whose id is linked to provider_tag is an update; any other
    record is a create. Records to create with a blank title are skipped
    without being reported. Records whose payload cannot be built are
    skipped with a warning.

    Args:
        records: Local records to write
        provider_tag: Provider prefix used by linked ids
        to_payload: Builds the request body; receives (record, for_create)

    Returns:
        Tuple of (creates, updates)
    """
    creates: list[PendingOperation] = []
    updates: list[PendingOperation] = []

    for record in records:
        record_id = parse_record_id(record.id, (provider_tag,))
        linked = isinstance(record_id, LinkedId)

        if not linked and not (record.title or "").strip():
            logger.debug(f"Skipping record {record.id} with blank title")
            continue

        try:
            payload = to_payload(record, not linked)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping record {record.id}: invalid data ({e})")
            continue

        if isinstance(record_id, LinkedId):
            updates.append(
                PendingOperation(
                    item_id=record.id,
                    payload=payload,
                    remote_id=record_id.remote_id,
                )
            )
        else:
            creates.append(PendingOperation(item_id=record.id, payload=payload))

    return creates, updates


def _run_window(
    window: list[PendingOperation],
    operation: Callable[[PendingOperation], RemoteRecord],
    operation_name: str,
) -> list[OperationResult]:
    """Run one window concurrently and return results in input order."""
    results: dict[int, OperationResult] = {}

    with ThreadPoolExecutor(max_workers=len(window)) as executor:
        futures = {
            executor.submit(operation, pending): index
            for index, pending in enumerate(window)
        }

        for future in as_completed(futures):
            index = futures[future]
            pending = window[index]
            try:
                remote = future.result()
                results[index] = OperationResult(
                    item_id=pending.item_id,
                    success=True,
                    remote_id=remote.remote_id if remote else pending.remote_id,
                )
            except Exception as e:
                error = classify(e)
                logger.warning(
                    f"{operation_name} failed for {pending.item_id} "
                    f"({error.kind.value}): {error.message}"
                )
                results[index] = OperationResult(
                    item_id=pending.item_id,
                    success=False,
                    remote_id=pending.remote_id,
                    error=error,
                )

    return [results[index] for index in range(len(window))]


def _execute_batch(
    operations: list[PendingOperation],
    operation: Callable[[PendingOperation], RemoteRecord],
    max_concurrency: int,
    operation_name: str,
) -> list[OperationResult]:
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

    results: list[OperationResult] = []
    for i in range(0, len(operations), max_concurrency):
        window = operations[i : i + max_concurrency]
        results.extend(_run_window(window, operation, operation_name))

    failed = sum(1 for result in results if not result.success)
    if operations:
        logger.debug(
            f"{operation_name}: {len(results) - failed} succeeded, {failed} failed"
        )
    return results


def execute_create_batch(
    operations: list[PendingOperation],
    create: Callable[[dict[str, Any]], RemoteRecord],
    max_concurrency: int = MAX_BATCH_SIZE,
) -> list[OperationResult]:
    """
    Execute create operations.

    Args:
        operations: Pending creates
        create: Issues one create call with a payload
        max_concurrency: Window size

    Returns:
        One result per operation, in input order; successful results carry
        the new remote id
    """
    return _execute_batch(
        operations,
        lambda pending: create(pending.payload),
        max_concurrency,
        "Create",
    )


def execute_update_batch(
    operations: list[PendingOperation],
    update: Callable[[str, dict[str, Any]], RemoteRecord],
    max_concurrency: int = MAX_BATCH_SIZE,
) -> list[OperationResult]:
    """
    Execute update operations.

    Args:
        operations: Pending updates, each with a remote_id
        update: Issues one update call with (remote_id, payload)
        max_concurrency: Window size

    Returns:
        One result per operation, in input order
    """
    return _execute_batch(
        operations,
        lambda pending: update(pending.remote_id or "", pending.payload),
        max_concurrency,
        "Update",
    )
