"""Unit tests for module graph resolution."""

from pathlib import Path

import pytest

from chain_deployments.exceptions import CyclicDependencyError, GraphError, UnresolvedParameterError
from chain_deployments.graph import resolve_module, topological_order
from chain_deployments.parsers import load_module_definition, parse_module_definition
from chain_deployments.types import AccountRef, ContractRef, ContractSpec, Literal


def _names(specs):
    return [spec.name for spec in specs]


class TestTopologicalOrder:
    """Test the topological_order function."""

    def test_independent_contracts_keep_declaration_order(self):
        """Test that ties are broken by declaration order."""
        specs = [ContractSpec("C"), ContractSpec("A"), ContractSpec("B")]

        assert _names(topological_order(specs)) == ["C", "A", "B"]

    def test_dependency_declared_later_is_moved_first(self):
        """Test that a referenced contract is deployed before its dependent."""
        specs = [ContractSpec("B", (ContractRef("A"),)), ContractSpec("A")]

        assert _names(topological_order(specs)) == ["A", "B"]

    def test_diamond(self):
        """Test a diamond: D needs B and C, which both need A."""
        specs = [
            ContractSpec("D", (ContractRef("B"), ContractRef("C"))),
            ContractSpec("C", (ContractRef("A"),)),
            ContractSpec("B", (ContractRef("A"),)),
            ContractSpec("A"),
        ]

        assert _names(topological_order(specs)) == ["A", "C", "B", "D"]

    def test_ordering_is_deterministic(self):
        """Test that repeated resolution yields the same order."""
        specs = [
            ContractSpec("X", (ContractRef("Z"),)),
            ContractSpec("Y"),
            ContractSpec("Z"),
        ]

        orders = {tuple(_names(topological_order(specs))) for _ in range(5)}
        assert orders == {("Y", "Z", "X")}

    def test_cycle_raises_with_cycle_path(self):
        """Test that a cycle is reported with the contracts involved."""
        specs = [
            ContractSpec("A", (ContractRef("B"),)),
            ContractSpec("B", (ContractRef("C"),)),
            ContractSpec("C", (ContractRef("A"),)),
            ContractSpec("D"),
        ]

        with pytest.raises(CyclicDependencyError) as exc_info:
            topological_order(specs)

        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B", "C"}
        assert "A" in str(exc_info.value)

    def test_self_reference_is_a_cycle(self):
        """Test that a contract referencing itself is cyclic."""
        with pytest.raises(CyclicDependencyError) as exc_info:
            topological_order([ContractSpec("A", (ContractRef("A"),))])

        assert exc_info.value.cycle == ["A", "A"]

    def test_unknown_reference_raises(self):
        """Test that referencing an undeclared contract is rejected."""
        with pytest.raises(UnresolvedParameterError):
            topological_order([ContractSpec("A", (ContractRef("Ghost"),))])

    def test_duplicate_names_raise(self):
        """Test that a contract can only be declared once."""
        with pytest.raises(GraphError):
            topological_order([ContractSpec("A"), ContractSpec("A")])


class TestResolveModule:
    """Test the resolve_module function."""

    def test_resolves_fixture_module(self, deploy_all_module):
        """Test that parameters are substituted and the plan is ordered."""
        plan = resolve_module(deploy_all_module, "DeployAllModule-lisk")

        assert plan.deployment_id == "DeployAllModule-lisk"
        assert plan.module_name == "DeployAllModule"
        assert _names(plan.contracts) == [
            "SessionKeyModule",
            "CPPayPaymaster",
            "SwapRouter",
            "BillPaymentAdapter",
        ]

        by_name = {spec.name: spec for spec in plan.contracts}
        assert by_name["CPPayPaymaster"].constructor_params == (
            Literal("0x5ff137d4b0fdcd49dca30c7cf57e578a026d2789"),
        )
        assert by_name["SwapRouter"].constructor_params == (AccountRef(0),)
        assert plan.calls[0].args == (ContractRef("SwapRouter"),)

    def test_overrides_take_precedence_over_defaults(self, deploy_all_module):
        """Test that per-run overrides replace module defaults."""
        plan = resolve_module(
            deploy_all_module,
            "run-1",
            {"entryPoint": Literal("0x0000000071727de22e5e9d8baf0edac6f37da032")},
        )

        paymaster = next(s for s in plan.contracts if s.name == "CPPayPaymaster")
        assert paymaster.constructor_params == (
            Literal("0x0000000071727de22e5e9d8baf0edac6f37da032"),
        )

    def test_plain_override_values_become_literals(self, deploy_all_module):
        """Test that programmatic overrides need not be wrapped."""
        plan = resolve_module(deploy_all_module, "run-1", {"admin": "0x" + "1" * 40})

        router = next(s for s in plan.contracts if s.name == "SwapRouter")
        assert router.constructor_params == (Literal("0x" + "1" * 40),)

    def test_parameter_can_reference_contract(self):
        """Test that a parameter resolving to a contract adds a graph edge."""
        module = parse_module_definition(
            {
                "name": "M",
                "parameters": {"dep": {"contract": "A"}},
                "contracts": [{"name": "B", "args": [{"param": "dep"}]}, "A"],
            }
        )

        plan = resolve_module(module, "m")

        assert _names(plan.contracts) == ["A", "B"]

    def test_dependent_pair_fixture(self, fixtures_dir: Path):
        """Test that ContractA is deployed before ContractB."""
        module = load_module_definition(fixtures_dir / "modules" / "dependent_pair.json")

        assert _names(resolve_module(module, "pair").contracts) == ["ContractA", "ContractB"]

    def test_cyclic_fixture_raises(self, fixtures_dir: Path):
        """Test that a cyclic module fails before anything is deployed."""
        module = load_module_definition(fixtures_dir / "modules" / "cyclic.json")

        with pytest.raises(CyclicDependencyError) as exc_info:
            resolve_module(module, "cyclic")

        assert set(exc_info.value.cycle) == {"ContractA", "ContractB"}

    def test_missing_parameter_raises(self):
        """Test that a parameter without override or default is rejected."""
        module = parse_module_definition(
            {"name": "M", "contracts": [{"name": "A", "args": [{"param": "owner"}]}]}
        )

        with pytest.raises(UnresolvedParameterError, match="owner"):
            resolve_module(module, "m")

    def test_call_to_unknown_contract_raises(self):
        """Test that post-deploy calls must target a module contract."""
        module = parse_module_definition(
            {"name": "M", "contracts": ["A"], "calls": [{"target": "B", "method": "init"}]}
        )

        with pytest.raises(UnresolvedParameterError):
            resolve_module(module, "m")

    def test_call_argument_to_unknown_contract_raises(self):
        """Test that call arguments may only reference module contracts."""
        module = parse_module_definition(
            {
                "name": "M",
                "contracts": ["A"],
                "calls": [{"target": "A", "method": "init", "args": [{"contract": "B"}]}],
            }
        )

        with pytest.raises(UnresolvedParameterError):
            resolve_module(module, "m")

    def test_empty_deployment_id_raises(self, deploy_all_module):
        """Test that a deployment ID is required."""
        with pytest.raises(GraphError):
            resolve_module(deploy_all_module, "")

    def test_call_keys_are_positional(self, deploy_all_module):
        """Test that call keys identify calls by index, target and method."""
        plan = resolve_module(deploy_all_module, "run-1")

        assert plan.call_key(0) == "0:BillPaymentAdapter.setSwapRouter"
