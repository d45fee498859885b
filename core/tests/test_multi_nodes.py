"""
Tests for multi-node composition: GroupNode, PipelineNode, FirstMatchNode.

Covers:
- Pipeline short-circuit on the first failure, remaining children not_run
- State written by one child is visible to later siblings and the caller
- Group concurrency, max_parallelism and declaration-ordered results
- CombinePolicy outcomes (partial success, max_failures, all failed)
- Multi-node hook failures, exception aggregation and deep reset
- Cooperative cancellation
"""

import asyncio

import pytest

from nodeflow.errors import ExecutionCancelledError, NodeAlreadyRunError
from nodeflow.graph import (
    CombinePolicy,
    ExecutionContext,
    FirstMatchNode,
    FuncNode,
    GroupNode,
    Node,
    NodeResult,
    NodeResultStatus,
    PipelineNode,
)


class SucceedNode(Node):
    def __init__(self, node_id: str | None = None, delay: float = 0.0):
        super().__init__(node_id=node_id)
        self.delay = delay
        self.execute_count = 0

    async def perform_execute(self, context):
        self.execute_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return NodeResultStatus.SUCCEEDED


class FailNode(Node):
    def __init__(self, node_id: str | None = None, error: Exception | None = None):
        super().__init__(node_id=node_id)
        self.error = error or RuntimeError(f"{node_id or 'node'} failed")
        self.execute_count = 0

    async def perform_execute(self, context):
        self.execute_count += 1
        raise self.error


class ConcurrencyProbe:
    """Tracks how many probe nodes are inside their work at once."""

    def __init__(self):
        self.active = 0
        self.max_active = 0

    def node(self, node_id: str, delay: float = 0.02) -> Node:
        probe = self

        class ProbeNode(Node):
            async def perform_execute(self, context):
                probe.active += 1
                probe.max_active = max(probe.max_active, probe.active)
                try:
                    await asyncio.sleep(delay)
                finally:
                    probe.active -= 1
                return NodeResultStatus.SUCCEEDED

        return ProbeNode(node_id=node_id)


class FailingHookGroup(GroupNode):
    def __init__(self, fail_in: str, **kwargs):
        super().__init__(**kwargs)
        self.fail_in = fail_in

    async def before_execute(self, context):
        if self.fail_in == "before":
            raise RuntimeError("group setup failed")

    async def after_execute(self, context):
        if self.fail_in == "after":
            raise RuntimeError("group teardown failed")


def statuses(result: NodeResult) -> list[NodeResultStatus]:
    return [child.status for child in result.children]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TestPipeline:
    @pytest.mark.asyncio
    async def test_failure_short_circuits_remaining_children(self):
        a, b, c = SucceedNode("A"), FailNode("B"), SucceedNode("C")
        pipeline = PipelineNode([a, b, c])

        result = await pipeline.execute("subject")

        assert result.status == NodeResultStatus.GROUP_FAILED
        assert statuses(result) == [
            NodeResultStatus.SUCCEEDED,
            NodeResultStatus.FAILED,
            NodeResultStatus.NOT_RUN,
        ]
        assert [child.node_id for child in result.children] == ["A", "B", "C"]
        assert c.execute_count == 0
        assert c.status == NodeResultStatus.NOT_RUN

    @pytest.mark.asyncio
    async def test_state_passes_between_siblings_and_back_to_caller(self):
        seen = {}

        def write(ctx):
            ctx.state.Foo = "Bar"

        def read(ctx):
            seen["foo"] = ctx.state.Foo
            seen["missing"] = ctx.state.Nothing

        context = ExecutionContext("subject")
        result = await PipelineNode([FuncNode(write), FuncNode(read)]).execute(context)

        assert result.status == NodeResultStatus.SUCCEEDED
        assert seen == {"foo": "Bar", "missing": None}
        assert context.state.Foo == "Bar"

    @pytest.mark.asyncio
    async def test_children_run_in_order(self):
        order = []
        pipeline = PipelineNode(
            [FuncNode(lambda ctx, n=n: order.append(n)) for n in range(5)]
        )

        await pipeline.execute(None)

        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_not_run_child_does_not_stop_pipeline(self):
        skipped = SucceedNode("skipped")
        skipped.should_execute_func = lambda ctx: False
        last = SucceedNode("last")

        result = await PipelineNode([skipped, last]).execute(None)

        assert result.status == NodeResultStatus.SUCCEEDED
        assert statuses(result) == [NodeResultStatus.NOT_RUN, NodeResultStatus.SUCCEEDED]

    @pytest.mark.asyncio
    async def test_continue_on_failure_runs_every_child(self):
        last = SucceedNode("last")
        pipeline = PipelineNode(
            [SucceedNode("first"), FailNode("middle"), last],
            policy=CombinePolicy(continue_on_failure=True),
        )

        result = await pipeline.execute(None)

        assert last.execute_count == 1
        assert result.status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS

    @pytest.mark.asyncio
    async def test_nested_group_failure_stops_pipeline(self):
        inner = GroupNode([FailNode("x"), FailNode("y")])
        after = SucceedNode("after")

        result = await PipelineNode([inner, after]).execute(None)

        assert result.status == NodeResultStatus.GROUP_FAILED
        assert result.children[0].status == NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES
        assert after.execute_count == 0

    @pytest.mark.asyncio
    async def test_empty_pipeline_succeeds(self):
        result = await PipelineNode().execute(None)
        assert result.status == NodeResultStatus.SUCCEEDED


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    @pytest.mark.asyncio
    async def test_all_children_run_despite_failures(self):
        nodes = [SucceedNode("a"), FailNode("b"), SucceedNode("c")]

        result = await GroupNode(nodes).execute(None)

        assert result.status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS
        assert [n.execute_count for n in nodes] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_all_children_fail(self):
        result = await GroupNode([FailNode("a"), FailNode("b")]).execute(None)

        assert result.status == NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES

    @pytest.mark.asyncio
    async def test_all_children_succeed(self):
        result = await GroupNode([SucceedNode("a"), SucceedNode("b")]).execute(None)

        assert result.status == NodeResultStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_policy_without_partial_success(self):
        group = GroupNode(
            [SucceedNode("a"), FailNode("b")],
            policy=CombinePolicy(allow_partial_success=False),
        )

        result = await group.execute(None)

        assert result.status == NodeResultStatus.GROUP_FAILED

    @pytest.mark.asyncio
    async def test_policy_max_failures(self):
        children = [SucceedNode("a"), FailNode("b"), FailNode("c")]
        tolerant = GroupNode(children, policy=CombinePolicy(max_failures=2))
        strict = GroupNode(
            [SucceedNode("a"), FailNode("b"), FailNode("c")],
            policy=CombinePolicy(max_failures=1),
        )

        tolerant_result = await tolerant.execute(None)
        strict_result = await strict.execute(None)

        assert tolerant_result.status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS
        assert strict_result.status == NodeResultStatus.GROUP_FAILED

    @pytest.mark.asyncio
    async def test_partial_child_counts_toward_mixed_outcome(self):
        inner = GroupNode([SucceedNode("x"), FailNode("y")])

        result = await GroupNode([inner, SucceedNode("z")]).execute(None)

        assert result.children[0].status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS
        assert result.status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS

    @pytest.mark.asyncio
    async def test_children_run_concurrently(self):
        probe = ConcurrencyProbe()
        group = GroupNode([probe.node(f"n{i}") for i in range(4)])

        result = await group.execute(None)

        assert result.status == NodeResultStatus.SUCCEEDED
        assert probe.max_active == 4

    @pytest.mark.asyncio
    async def test_max_parallelism_bounds_fan_out(self):
        probe = ConcurrencyProbe()
        group = GroupNode([probe.node(f"n{i}") for i in range(5)], max_parallelism=2)

        await group.execute(None)

        assert probe.max_active == 2

    @pytest.mark.asyncio
    async def test_configured_parallelism_applies_by_default(self, isolated_config):
        isolated_config.write_text('{"engine": {"max_parallelism": 1}}')
        probe = ConcurrencyProbe()
        group = GroupNode([probe.node(f"n{i}") for i in range(3)])

        await group.execute(None)

        assert probe.max_active == 1

    @pytest.mark.asyncio
    async def test_results_keep_declaration_order(self):
        nodes = [
            SucceedNode("slow", delay=0.05),
            SucceedNode("mid", delay=0.02),
            SucceedNode("fast"),
        ]

        result = await GroupNode(nodes).execute(None)

        assert [child.node_id for child in result.children] == ["slow", "mid", "fast"]

    @pytest.mark.asyncio
    async def test_parent_result_is_per_child(self):
        seen = {}

        async def record(ctx):
            await asyncio.sleep(0)
            seen[ctx.parent_result.node_id] = ctx.parent_result

        group = GroupNode([FuncNode(record, node_id="left"), FuncNode(record, node_id="right")])
        result = await group.execute(None)

        assert seen["left"] is result.children[0]
        assert seen["right"] is result.children[1]

    @pytest.mark.asyncio
    async def test_not_run_children_are_neutral(self):
        skipped = FailNode("skipped")
        skipped.should_execute_func = lambda ctx: False

        result = await GroupNode([skipped, FailNode("b")]).execute(None)

        assert skipped.execute_count == 0
        assert result.status == NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES

    @pytest.mark.asyncio
    async def test_group_predicate_false_skips_children(self):
        child = SucceedNode("child")
        group = GroupNode([child], should_execute_func=lambda ctx: False)

        result = await group.execute(None)

        assert result.status == NodeResultStatus.NOT_RUN
        assert result.children == []
        assert child.execute_count == 0


# ---------------------------------------------------------------------------
# FirstMatch
# ---------------------------------------------------------------------------


class TestFirstMatch:
    @pytest.mark.asyncio
    async def test_stops_at_first_success(self):
        skipped = SucceedNode("skipped")
        skipped.should_execute_func = lambda ctx: False
        winner = SucceedNode("winner")
        later = SucceedNode("later")

        result = await FirstMatchNode([skipped, winner, later]).execute(None)

        assert result.status == NodeResultStatus.SUCCEEDED
        assert statuses(result) == [
            NodeResultStatus.NOT_RUN,
            NodeResultStatus.SUCCEEDED,
            NodeResultStatus.NOT_RUN,
        ]
        assert later.execute_count == 0

    @pytest.mark.asyncio
    async def test_failures_fall_through(self):
        result = await FirstMatchNode([FailNode("a"), SucceedNode("b")]).execute(None)

        assert result.status == NodeResultStatus.SUCCEEDED
        assert len(result.get_fail_exceptions()) == 1

    @pytest.mark.asyncio
    async def test_no_success(self):
        result = await FirstMatchNode([FailNode("a"), FailNode("b")]).execute(None)

        assert result.status == NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES

    @pytest.mark.asyncio
    async def test_nothing_ran(self):
        a = SucceedNode("a")
        a.should_execute_func = lambda ctx: False

        result = await FirstMatchNode([a]).execute(None)

        assert result.status == NodeResultStatus.NOT_RUN


# ---------------------------------------------------------------------------
# Hooks, exceptions, reset
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_multi_node_before_hook_failure_is_single_node_failed():
    child = SucceedNode("child")
    group = FailingHookGroup("before", children=[child])

    result = await group.execute(None)

    assert result.status == NodeResultStatus.SINGLE_NODE_FAILED
    assert child.execute_count == 0
    assert str(result.exception) == "group setup failed"


@pytest.mark.asyncio
async def test_multi_node_after_hook_failure_keeps_child_results():
    group = FailingHookGroup("after", children=[SucceedNode("child")])

    result = await group.execute(None)

    assert result.status == NodeResultStatus.SINGLE_NODE_FAILED
    assert statuses(result) == [NodeResultStatus.SUCCEEDED]


@pytest.mark.asyncio
async def test_multi_node_predicate_failure_is_single_node_failed():
    def broken(ctx):
        raise RuntimeError("predicate broke")

    result = await PipelineNode([SucceedNode()], should_execute_func=broken).execute(None)

    assert result.status == NodeResultStatus.SINGLE_NODE_FAILED


@pytest.mark.asyncio
async def test_fail_exceptions_collects_each_exception_once():
    e1, e2, e3 = RuntimeError("one"), ValueError("two"), KeyError("three")
    tree = GroupNode(
        [
            FailNode("a", error=e1),
            PipelineNode([SucceedNode("b"), FailNode("c", error=e2)]),
            GroupNode([FailNode("d", error=e3), SucceedNode("e")]),
        ]
    )

    result = await tree.execute(None)
    exceptions = result.get_fail_exceptions()

    assert exceptions == [e1, e2, e3]
    aggregate = result.aggregate_exception
    assert isinstance(aggregate, ExceptionGroup)
    assert list(aggregate.exceptions) == [e1, e2, e3]


@pytest.mark.asyncio
async def test_reset_walks_the_whole_tree():
    inner_fail = FailNode("inner-fail")
    leaf = SucceedNode("leaf")
    tree = PipelineNode([GroupNode([leaf, inner_fail]), SucceedNode("tail")])
    await tree.execute(None)
    assert inner_fail.status == NodeResultStatus.FAILED

    tree.reset()

    for node in (tree, tree.children[0], leaf, inner_fail, tree.children[1]):
        assert node.status == NodeResultStatus.NOT_RUN
        assert node.result is None

    result = await tree.execute(None)
    assert result.status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS
    assert leaf.execute_count == 2


@pytest.mark.asyncio
async def test_same_node_twice_in_tree_is_rejected_second_time():
    shared = SucceedNode("shared")

    result = await PipelineNode([shared, shared]).execute(None)

    assert result.status == NodeResultStatus.GROUP_FAILED
    assert statuses(result) == [NodeResultStatus.SUCCEEDED, NodeResultStatus.FAILED]
    assert shared.execute_count == 1


@pytest.mark.asyncio
async def test_same_node_twice_in_group_runs_once_while_predicate_suspends():
    async def slow_gate(ctx):
        await asyncio.sleep(0)
        return True

    shared = SucceedNode("shared")
    shared.should_execute_func_async = slow_gate

    result = await GroupNode([shared, shared]).execute(None)

    assert shared.execute_count == 1
    assert statuses(result) == [NodeResultStatus.SUCCEEDED, NodeResultStatus.FAILED]
    assert isinstance(result.children[1].exception, NodeAlreadyRunError)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancellation_skips_nodes_not_yet_started():
    context = ExecutionContext(None)

    def cancel(ctx):
        ctx.cancellation.cancel()

    after = SucceedNode("after")
    result = await PipelineNode([FuncNode(cancel), after]).execute(context)

    assert statuses(result) == [NodeResultStatus.SUCCEEDED, NodeResultStatus.NOT_RUN]
    assert after.execute_count == 0
    assert result.status == NodeResultStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_cancellation_lets_started_group_children_finish():
    context = ExecutionContext(None)
    finished = []

    async def cancel_then_work(ctx):
        await asyncio.sleep(0.01)
        ctx.cancellation.cancel()
        finished.append("canceller")

    async def cooperative(ctx):
        await asyncio.sleep(0.03)
        finished.append("cooperative")
        ctx.cancellation.raise_if_cancelled()

    group = GroupNode([FuncNode(cancel_then_work), FuncNode(cooperative)])
    result = await group.execute(context)

    assert sorted(finished) == ["canceller", "cooperative"]
    assert statuses(result) == [NodeResultStatus.SUCCEEDED, NodeResultStatus.FAILED]
    assert isinstance(result.children[1].exception, ExecutionCancelledError)
