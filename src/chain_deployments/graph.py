"""Module graph resolution for chain-deployments library."""

import heapq
import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from .exceptions import CyclicDependencyError, GraphError, UnresolvedParameterError
from .types import (
    AccountRef,
    ContractRef,
    ContractSpec,
    DeploymentPlan,
    Literal,
    ModuleDefinition,
    ModuleParameter,
    ParamRef,
    PostDeployCall,
)

logger = logging.getLogger(__name__)


def _substitute_parameter(
    param: ParamRef,
    module: ModuleDefinition,
    overrides: Mapping[str, Any],
    where: str,
) -> ParamRef:
    """Replace a ModuleParameter by its override or default."""
    if not isinstance(param, ModuleParameter):
        return param

    if param.name in overrides:
        value = overrides[param.name]
    elif param.name in module.parameters:
        value = module.parameters[param.name]
    else:
        raise UnresolvedParameterError(
            f"Parameter '{param.name}' used by {where} has no value and no default "
            f"in module '{module.name}'"
        )

    if isinstance(value, ModuleParameter):
        raise UnresolvedParameterError(
            f"Parameter '{param.name}' in module '{module.name}' refers to another parameter"
        )
    # Plain values passed programmatically are literals
    if not isinstance(value, (Literal, AccountRef, ContractRef)):
        value = Literal(value)
    return value


def _dependencies(spec: ContractSpec) -> List[str]:
    """Names of contracts whose addresses a spec's constructor needs, in order."""
    deps: List[str] = []
    for param in spec.constructor_params:
        if isinstance(param, ContractRef) and param.name not in deps:
            deps.append(param.name)
    return deps


def _find_cycle(remaining: Set[str], edges: Dict[str, List[str]]) -> List[str]:
    """Walk dependency edges inside the unsorted remainder until a node repeats."""
    start = min(remaining)
    path: List[str] = []
    seen: Dict[str, int] = {}
    node = start
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = next(d for d in edges[node] if d in remaining)
    return path[seen[node]:] + [node]


def topological_order(contracts: List[ContractSpec]) -> List[ContractSpec]:
    """
    Order contracts so each appears after every contract it references.

    Uses Kahn's algorithm; among contracts that are ready at the same time the
    one declared first is emitted first, so the order is deterministic.

    Args:
        contracts: Contract specs in declaration order

    Returns:
        Contract specs in dependency order

    Raises:
        GraphError: If two contracts share a name
        UnresolvedParameterError: If a reference names an absent contract
        CyclicDependencyError: If the references contain a cycle
    """
    position: Dict[str, int] = {}
    for index, spec in enumerate(contracts):
        if spec.name in position:
            raise GraphError(f"Contract '{spec.name}' is declared more than once")
        position[spec.name] = index

    edges: Dict[str, List[str]] = {}
    dependents: Dict[str, List[str]] = {spec.name: [] for spec in contracts}
    indegree: Dict[str, int] = {}
    for spec in contracts:
        deps = _dependencies(spec)
        for dep in deps:
            if dep not in position:
                raise UnresolvedParameterError(
                    f"Contract '{spec.name}' references unknown contract '{dep}'"
                )
            dependents[dep].append(spec.name)
        edges[spec.name] = deps
        indegree[spec.name] = len(deps)

    ready = [position[name] for name, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)

    ordered: List[ContractSpec] = []
    while ready:
        spec = contracts[heapq.heappop(ready)]
        ordered.append(spec)
        for dependent in dependents[spec.name]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    if len(ordered) != len(contracts):
        remaining = {name for name, degree in indegree.items() if degree > 0}
        cycle = _find_cycle(remaining, edges)
        raise CyclicDependencyError(
            f"Cyclic dependency between contracts: {' -> '.join(cycle)}", cycle=cycle
        )

    return ordered


def resolve_module(
    module: ModuleDefinition,
    deployment_id: str,
    parameters: Optional[Mapping[str, Any]] = None,
) -> DeploymentPlan:
    """
    Expand a module definition into a deployment plan.

    Module parameters are substituted from overrides, then defaults. Contract
    address references stay symbolic: the executor substitutes real addresses
    just before submission.

    Args:
        module: Parsed module definition
        deployment_id: Stable identifier used for idempotency and on-disk namespacing
        parameters: Optional overrides for module parameters

    Returns:
        DeploymentPlan with contracts in topological order

    Raises:
        GraphError: If the module is not a well-formed dependency graph
    """
    if not deployment_id:
        raise GraphError("Deployment ID must not be empty")

    overrides = parameters or {}

    contracts = [
        ContractSpec(
            name=spec.name,
            constructor_params=tuple(
                _substitute_parameter(p, module, overrides, f"contract '{spec.name}'")
                for p in spec.constructor_params
            ),
        )
        for spec in module.contracts
    ]

    ordered = topological_order(contracts)
    names = {spec.name for spec in ordered}

    calls = []
    for call in module.calls:
        where = f"call {call.target}.{call.method}"
        if call.target not in names:
            raise UnresolvedParameterError(f"{where} targets unknown contract '{call.target}'")
        args = tuple(_substitute_parameter(a, module, overrides, where) for a in call.args)
        for arg in args:
            if isinstance(arg, ContractRef) and arg.name not in names:
                raise UnresolvedParameterError(f"{where} references unknown contract '{arg.name}'")
        calls.append(PostDeployCall(target=call.target, method=call.method, args=args))

    logger.debug(
        "Resolved module %s: %s", module.name, " -> ".join(spec.name for spec in ordered)
    )

    return DeploymentPlan(
        deployment_id=deployment_id,
        module_name=module.name,
        contracts=tuple(ordered),
        calls=tuple(calls),
    )
