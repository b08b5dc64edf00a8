"""pytest plugin that gates tests on the checked-out git branch.

Tests declare the branches they belong to with ``@pytest.mark.groups``::

    @pytest.mark.groups("feature-x", "release")
    def test_new_parser(): ...

When gating is enabled (``--branch-gate``, ``BRANCHGATE_ENABLED=1`` or the
``branchgate_enabled`` ini option) a test runs only on one of its groups or
on one of the ``itbranches``. Everything else is skipped, or deselected in
``deselect`` mode.
"""

from __future__ import annotations

import logging
import os

import pytest

from branchgate.config import (
    BranchGateConfig,
    GateMode,
    load_config_file,
    resolve_config,
)
from branchgate.exceptions import BranchGateConfigError
from branchgate.resolver import BranchResolver, GitBranchSource
from branchgate.selector import BranchGate, TestDescriptor

logger = logging.getLogger(__name__)

MARKER_NAME = "groups"
_SETTINGS = ("enabled", "itbranches", "current_branch", "mode", "cache")

gate_key = pytest.StashKey[BranchGate]()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("branchgate", "branch-gated test selection")
    group.addoption(
        "--branch-gate",
        action="store_true",
        default=None,
        dest="branchgate_enabled",
        help="Only run tests whose groups include the checked-out git branch.",
    )
    group.addoption(
        "--it-branches",
        default=None,
        dest="branchgate_itbranches",
        metavar="BRANCHES",
        help="Comma-separated branches on which every test runs.",
    )
    group.addoption(
        "--current-branch",
        default=None,
        dest="branchgate_current_branch",
        metavar="BRANCH",
        help="Use BRANCH as the current branch instead of reading git metadata.",
    )
    group.addoption(
        "--branch-gate-mode",
        default=None,
        dest="branchgate_mode",
        choices=[mode.value for mode in GateMode],
        help="Skip (default) or deselect tests that do not belong to the current branch.",
    )

    parser.addini("branchgate_enabled", "Enable branch gating (true/false).", default="")
    parser.addini("branchgate_itbranches", "Comma-separated branches on which every test runs.", default="")
    parser.addini("branchgate_current_branch", "Current branch override.", default="")
    parser.addini("branchgate_mode", "skip or deselect.", default="")
    parser.addini("branchgate_cache", "Cache the resolved branch for the session (true/false).", default="")


def load_plugin_config(config: pytest.Config) -> BranchGateConfig:
    """Build the effective BranchGateConfig for a pytest session.

    Raises:
        BranchGateConfigError: If an explicit setting has an invalid value.
    """
    try:
        file_values = load_config_file(config.rootpath)
    except BranchGateConfigError as exc:
        logger.warning("ignoring branchgate config file: %s", exc)
        file_values = {}

    options = {
        setting: config.getoption(f"branchgate_{setting}", None)
        for setting in _SETTINGS
    }
    ini = {setting: config.getini(f"branchgate_{setting}") for setting in _SETTINGS}
    return resolve_config(options=options, environ=os.environ, ini=ini, file_values=file_values)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER_NAME}(*branches): branches on which the test runs when branch gating is enabled",
    )

    try:
        settings = load_plugin_config(config)
    except BranchGateConfigError as exc:
        raise pytest.UsageError(f"branchgate: {exc}") from exc

    if not settings.enabled:
        return

    resolver = BranchResolver(
        override=settings.current_branch,
        source=GitBranchSource(config.invocation_params.dir),
        cache=settings.cache_branch,
    )
    config.stash[gate_key] = BranchGate(settings, resolver)
    logger.debug("branch gating enabled: %s", settings.to_dict())


def pytest_report_header(config: pytest.Config) -> str | None:
    gate = config.stash.get(gate_key, None)
    if gate is None:
        return None

    context = gate.resolver.resolve()
    if context.resolved:
        branch = f"branch={context.name} (from {context.source})"
    else:
        branch = f"branch unavailable ({context.failure_kind}), failing open"
    itbranches = ",".join(sorted(gate.config.it_branches)) or "-"
    return f"branchgate: {branch}, itbranches={itbranches}, mode={gate.config.mode}"


def describe_item(item: pytest.Item) -> TestDescriptor:
    """Build a TestDescriptor from a collected pytest item."""
    labels: set[str] = set()
    for marker in item.iter_markers(name=MARKER_NAME):
        labels.update(str(arg) for arg in marker.args)
    return TestDescriptor(
        name=item.nodeid,
        group_labels=frozenset(labels),
        enabled=item.get_closest_marker("skip") is None,
    )


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    gate = config.stash.get(gate_key, None)
    if gate is None:
        return

    selected: list[pytest.Item] = []
    deselected: list[pytest.Item] = []
    for item in items:
        test = describe_item(item)
        decision = gate.decide(test)
        if decision.run or not test.enabled:
            selected.append(item)
            continue
        if gate.config.mode is GateMode.DESELECT:
            deselected.append(item)
        else:
            item.add_marker(pytest.mark.skip(reason=f"branchgate: {decision.reason}"))
            selected.append(item)

    if deselected:
        config.hook.pytest_deselected(items=deselected)
        items[:] = selected
