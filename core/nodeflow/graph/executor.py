"""
Node Executor - runs node trees.

execute_node() is the single place where execution rules live. It:
1. Rejects nodes that already ran without reset()
2. Skips nodes once the cancellation token is set
3. Evaluates the node's predicate
4. Runs before_execute, the kind-specific work, after_execute
5. Records status, subject snapshot and any exception on the NodeResult

Nothing raised by node code crosses a node boundary; failures are data on the
result tree. asyncio.CancelledError from the surrounding task is not caught.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from nodeflow.errors import NodeAlreadyRunError
from nodeflow.graph.context import ExecutionContext, _current_result
from nodeflow.graph.multi import FirstMatchNode, GroupNode, PipelineNode
from nodeflow.graph.node import Node, NodeKind, to_status
from nodeflow.graph.result import NodeResult, NodeResultStatus, NodeRunStatus
from nodeflow.graph.transition import TransitionNode
from nodeflow.observability import get_trace_context, set_trace_context

logger = logging.getLogger(__name__)

_MULTI_KINDS = (NodeKind.GROUP, NodeKind.PIPELINE, NodeKind.FIRST_MATCH)


async def execute_root(node: Node[Any], context: ExecutionContext[Any]) -> NodeResult:
    """Execute a root node in its own task so trace context stays scoped to it."""

    async def _run() -> NodeResult:
        if "execution_id" not in get_trace_context():
            set_trace_context(execution_id=uuid.uuid4().hex)
        if node.flow_name:
            set_trace_context(flow=node.flow_name)
        logger.info(f"🚀 Starting execution: {node.id}")
        result = await execute_node(node, context)
        exceptions = result.get_fail_exceptions()
        logger.info(
            f"✓ Execution complete: {node.id} -> {result.status} "
            f"({len(exceptions)} exceptions, {result.latency_ms}ms)",
            extra={"node_id": node.id, "status": result.status, "latency_ms": result.latency_ms},
        )
        return result

    return await asyncio.create_task(_run())


async def execute_node(node: Node[Any], context: ExecutionContext[Any]) -> NodeResult:
    """Execute one node and its sub-tree against a context."""
    result = NodeResult(node_id=node.id)

    if node.status != NodeResultStatus.NOT_RUN or node.run_status == NodeRunStatus.RUNNING:
        error = NodeAlreadyRunError(node.id, str(node.status))
        logger.warning(f"⚠ {error.message}", extra={"node_id": node.id})
        result.status = NodeResultStatus.FAILED
        result.exception = error
        result.subject = context.subject
        return result

    # RUNNING from here on, so a concurrent visit of the same node is rejected
    node.run_status = NodeRunStatus.RUNNING
    token = _current_result.set(result)
    try:
        return await _execute(node, context, result)
    except asyncio.CancelledError:
        node.run_status = NodeRunStatus.FAULTED
        raise
    finally:
        _current_result.reset(token)


async def _execute(
    node: Node[Any], context: ExecutionContext[Any], result: NodeResult
) -> NodeResult:
    if node.kind in _MULTI_KINDS:
        failure_status = NodeResultStatus.SINGLE_NODE_FAILED
    else:
        failure_status = NodeResultStatus.FAILED

    if context.cancellation.cancelled:
        logger.info(f"⏭ Execution cancelled, skipping {node.id}", extra={"node_id": node.id})
        return _finish(node, context, result, NodeResultStatus.NOT_RUN)

    try:
        should_run = await _should_execute(node, context)
    except Exception as e:
        return _fail(node, context, result, failure_status, e)

    if not should_run:
        logger.debug(f"⏭ Predicate false, skipping {node.id}", extra={"node_id": node.id})
        return _finish(node, context, result, NodeResultStatus.NOT_RUN)

    result.mark_started()
    logger.debug(f"▶ {node.id} ({node.kind})", extra={"node_id": node.id})

    try:
        await node.before_execute(context)
        status = await _RUNNERS[node.kind](node, context, result)
        await node.after_execute(context)
    except Exception as e:
        return _fail(node, context, result, failure_status, e)

    return _finish(node, context, result, status)


async def _should_execute(node: Node[Any], context: ExecutionContext[Any]) -> bool:
    """Async predicate function, else sync predicate function, else the node's method."""
    if node.should_execute_func_async is not None:
        return bool(await node.should_execute_func_async(context))
    if node.should_execute_func is not None:
        return bool(node.should_execute_func(context))
    return bool(await node.should_execute(context))


def _finish(
    node: Node[Any],
    context: ExecutionContext[Any],
    result: NodeResult,
    status: NodeResultStatus,
) -> NodeResult:
    result.status = status
    result.subject = context.subject
    if result.started_at is not None:
        result.mark_ended()

    node.status = status
    node.result = result
    if result.started_at is None and status == NodeResultStatus.NOT_RUN:
        # Skipped before starting; the node may run again without reset()
        node.run_status = NodeRunStatus.NOT_RUN
    elif status.is_failure():
        node.run_status = NodeRunStatus.FAULTED
    else:
        node.run_status = NodeRunStatus.COMPLETED

    logger.debug(
        f"   {node.id} -> {status}",
        extra={"node_id": node.id, "status": status, "latency_ms": result.latency_ms},
    )
    return result


def _fail(
    node: Node[Any],
    context: ExecutionContext[Any],
    result: NodeResult,
    status: NodeResultStatus,
    error: Exception,
) -> NodeResult:
    if result.exception is None:
        result.exception = error
    else:
        result.exception = BaseExceptionGroup(
            f"Node {node.id} failed after recording child exceptions",
            [result.exception, error],
        )
    logger.warning(
        f"   ✗ {node.id} failed: {type(error).__name__}: {error}",
        extra={"node_id": node.id, "status": status},
        exc_info=logger.isEnabledFor(logging.DEBUG),
    )
    return _finish(node, context, result, status)


# ---------------------------------------------------------------------------
# Kind-specific work
# ---------------------------------------------------------------------------


async def _run_leaf(
    node: Node[Any], context: ExecutionContext[Any], result: NodeResult
) -> NodeResultStatus:
    return to_status(await node.perform_execute(context))


async def _run_group(
    node: GroupNode[Any], context: ExecutionContext[Any], result: NodeResult
) -> NodeResultStatus:
    """Fan out to every child with asyncio.gather; results keep declaration order."""
    limit = node.effective_parallelism()
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def run_child(child: Node[Any]) -> NodeResult:
        if semaphore is None:
            return await execute_node(child, context)
        async with semaphore:
            return await execute_node(child, context)

    logger.debug(
        f"   ⑂ Fan-out: {len(node.children)} children of {node.id} (limit={limit})",
        extra={"node_id": node.id},
    )
    child_results = await asyncio.gather(*(run_child(child) for child in node.children))
    result.children = list(child_results)
    return node.policy.combine(result.children)


async def _run_pipeline(
    node: PipelineNode[Any], context: ExecutionContext[Any], result: NodeResult
) -> NodeResultStatus:
    for index, child in enumerate(node.children):
        child_result = await execute_node(child, context)
        result.children.append(child_result)

        if child_result.status.is_failure() and not node.policy.continue_on_failure:
            remaining = node.children[index + 1 :]
            if remaining:
                logger.info(
                    f"   ⛔ {child.id} failed, {len(remaining)} remaining children of "
                    f"{node.id} not run",
                    extra={"node_id": node.id},
                )
            result.children.extend(NodeResult(node_id=rest.id) for rest in remaining)
            return NodeResultStatus.GROUP_FAILED

    return node.policy.combine(result.children)


async def _run_first_match(
    node: FirstMatchNode[Any], context: ExecutionContext[Any], result: NodeResult
) -> NodeResultStatus:
    for index, child in enumerate(node.children):
        child_result = await execute_node(child, context)
        result.children.append(child_result)

        if child_result.status.is_success():
            logger.debug(f"   ✓ First match: {child.id}", extra={"node_id": node.id})
            result.children.extend(
                NodeResult(node_id=rest.id) for rest in node.children[index + 1 :]
            )
            return NodeResultStatus.SUCCEEDED

    if any(r.status != NodeResultStatus.NOT_RUN for r in result.children):
        return NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES
    return NodeResultStatus.NOT_RUN


async def _run_transition(
    node: TransitionNode[Any, Any], context: ExecutionContext[Any], result: NodeResult
) -> NodeResultStatus:
    if node.child_node is None:
        logger.warning(
            f"Child node of transition {node.id} doesn't exist, node will be skipped",
            extra={"node_id": node.id},
        )
        return NodeResultStatus.NOT_RUN

    destination_subject = await node.map_source(context)
    destination_context = context.create_child_context(destination_subject)

    logger.debug(f"   ⇢ Transition {node.id} -> {node.child_node.id}", extra={"node_id": node.id})
    child_result = await execute_node(node.child_node, destination_context)
    result.transition_result = child_result

    exceptions = child_result.get_fail_exceptions()
    if exceptions:
        logger.info(
            f"   Transition child returned {len(exceptions)} exceptions",
            extra={"node_id": node.id},
        )
        result.exception = (
            exceptions[0]
            if len(exceptions) == 1
            else BaseExceptionGroup(f"Transition {node.id} child failures", exceptions)
        )

    source_subject = await node.map_result(context, child_result)
    if source_subject != context.subject:
        logger.debug("   Source subject has changed, calling change_subject")
        context.change_subject(source_subject)

    return child_result.status


_RUNNERS: dict[NodeKind, Callable[..., Awaitable[NodeResultStatus]]] = {
    NodeKind.LEAF: _run_leaf,
    NodeKind.GROUP: _run_group,
    NodeKind.PIPELINE: _run_pipeline,
    NodeKind.FIRST_MATCH: _run_first_match,
    NodeKind.TRANSITION: _run_transition,
}
