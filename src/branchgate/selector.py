"""Branch-gated test selection.

A test runs only when the checked-out branch is one of its group labels or
one of the configured integration branches (``itbranches``). The selector
only ever narrows: a test that is already disabled stays disabled, and a
test whose branch cannot be determined keeps its current state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from branchgate.config import BranchGateConfig
from branchgate.resolver import BranchContext, BranchResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TestDescriptor:
    """One test as seen by the selector."""

    __test__ = False

    name: str
    group_labels: frozenset[str] = field(default_factory=frozenset)
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Whether a test runs, and why."""

    run: bool
    reason: str
    branch: str | None = None


def valid_branches(test: TestDescriptor, it_branches: frozenset[str]) -> frozenset[str]:
    """Branches on which ``test`` is allowed to run."""
    return test.group_labels | it_branches


def resolver_for(config: BranchGateConfig) -> BranchResolver:
    return BranchResolver(override=config.current_branch, cache=config.cache_branch)


def decide(
    test: TestDescriptor,
    config: BranchGateConfig,
    resolver: BranchResolver,
) -> GateDecision:
    """Decide whether ``test`` runs on the current branch.

    Steps:
    1. A disabled test stays disabled; the branch is not resolved.
    2. If the branch cannot be resolved, the test keeps its state (fail-open).
    3. Otherwise the test runs only if the branch is one of its group labels
       or one of ``config.it_branches``.
    """
    logger.info("inspecting test '%s'", test.name)

    if not test.enabled:
        logger.info("test='%s' is already disabled; not inspecting branch", test.name)
        return GateDecision(run=False, reason="test is disabled by its own declaration")

    context: BranchContext = resolver.resolve()
    if not context.resolved:
        logger.error(
            "unable to read current branch for test='%s' (%s); leaving it enabled",
            test.name,
            context.failure_kind,
        )
        return GateDecision(
            run=test.enabled,
            reason=f"branch unavailable ({context.failure_kind}); failing open",
        )

    branch = context.name
    logger.info(
        "groups=%s itbranches=%s for test='%s'",
        sorted(test.group_labels),
        sorted(config.it_branches),
        test.name,
    )

    allowed = valid_branches(test, config.it_branches)
    if branch in allowed:
        return GateDecision(run=True, reason=f"branch '{branch}' is allowed", branch=branch)

    logger.info("disabled test='%s' on branch='%s'", test.name, branch)
    return GateDecision(
        run=False,
        reason=f"branch '{branch}' not in {sorted(allowed)}",
        branch=branch,
    )


def should_run(
    test: TestDescriptor,
    config: BranchGateConfig,
    resolver: BranchResolver | None = None,
) -> bool:
    """Return True if ``test`` should execute on the current branch.

    Args:
        test: The test being considered
        config: Effective branchgate settings
        resolver: Branch resolver to use; one is built from ``config`` if omitted

    Returns:
        False if the test is already disabled or the branch is not among its
        valid branches; the test's own enabled state if the branch cannot be
        resolved; True otherwise.
    """
    if resolver is None:
        resolver = resolver_for(config)
    return decide(test, config, resolver).run


class BranchGate:
    """A configuration and a resolver shared by every decision in a session."""

    def __init__(self, config: BranchGateConfig, resolver: BranchResolver | None = None) -> None:
        self.config = config
        self.resolver = resolver if resolver is not None else resolver_for(config)

    def decide(self, test: TestDescriptor) -> GateDecision:
        return decide(test, self.config, self.resolver)

    def should_run(self, test: TestDescriptor) -> bool:
        return self.decide(test).run
