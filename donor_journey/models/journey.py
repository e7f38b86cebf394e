"""Donor journey graph: stages (nodes) and transitions (edges).

The graph is plain data. Transitions reference stages by id, never by object,
so a journey round-trips through JSON unchanged and can be replaced wholesale
when an organization regenerates it from text.

Stage labels double as the value stored on a donor record
(``current_stage_name``), so they must be unique within a graph.

Usage:
    from donor_journey.models.journey import parse_journey_graph, get_stage_id_from_name

    graph = parse_journey_graph(raw_json)
    stage_id = get_stage_id_from_name(graph, "Initial Contact")  # "n1" or None
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidJourneyGraphError


class StageProperties(BaseModel):
    """Free-form property bag for a stage. ``description`` is required."""

    model_config = ConfigDict(extra="allow")

    description: str = Field(description="What this stage means for the donor relationship")
    actions: Optional[list[str]] = Field(
        default=None, description="Actions staff should take while a donor is in this stage"
    )


class Stage(BaseModel):
    """A node in the journey graph."""

    id: str = Field(description="Stage id, unique within the graph (e.g. 'n1')")
    label: str = Field(description="Human-readable stage name, unique within the graph")
    properties: StageProperties


class TransitionProperties(BaseModel):
    """Free-form property bag for a transition. ``description`` is required."""

    model_config = ConfigDict(extra="allow")

    description: str = Field(description="What has to happen for a donor to move along this edge")


class Transition(BaseModel):
    """A directed edge between two stages."""

    id: str = Field(description="Transition id, unique within the graph (e.g. 'e1')")
    source: str = Field(description="Id of the stage the transition starts from")
    target: str = Field(description="Id of the stage the transition leads to")
    label: str = Field(description="Short trigger name (e.g. 'FOLLOW_UP')")
    properties: TransitionProperties


class DonorJourneyGraph(BaseModel):
    """An organization's donor journey."""

    nodes: list[Stage] = Field(default_factory=list)
    edges: list[Transition] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "DonorJourneyGraph":
        return cls(nodes=[], edges=[])

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        """Find a stage by id (exact match)."""
        return next((node for node in self.nodes if node.id == stage_id), None)

    def get_stage_by_label(self, label: str) -> Optional[Stage]:
        """Find a stage by label (exact, case-sensitive match)."""
        return next((node for node in self.nodes if node.label == label), None)

    def outgoing_transitions(self, stage_id: str) -> list[Transition]:
        """Transitions whose source is ``stage_id``, in graph order."""
        return [edge for edge in self.edges if edge.source == stage_id]

    def next_stage_ids(self, stage_id: str) -> set[str]:
        """Ids of stages reachable in one step from ``stage_id``."""
        return {edge.target for edge in self.outgoing_transitions(stage_id)}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage, keeping extra property keys."""
        return self.model_dump(mode="json", exclude_none=True)


def get_stage_id_from_name(graph: DonorJourneyGraph, stage_name: str) -> Optional[str]:
    """Resolve a stage label to its id. Returns None if no stage has that label."""
    stage = graph.get_stage_by_label(stage_name)
    return stage.id if stage else None


def get_stage_name_from_id(graph: DonorJourneyGraph, stage_id: str) -> Optional[str]:
    """Resolve a stage id to its label. Returns None if no stage has that id."""
    stage = graph.get_stage(stage_id)
    return stage.label if stage else None


# =============================================================================
# Structural validation
# =============================================================================


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _check_properties(props: Any, where: str, errors: list[str]) -> None:
    if not isinstance(props, dict):
        errors.append(f"{where}: properties must be an object")
        return
    if not isinstance(props.get("description"), str):
        errors.append(f"{where}: properties.description must be a string")


def validate_journey_graph(data: Any) -> list[str]:
    """Check raw journey data against the graph shape and invariants.

    Checks required fields and types, unique stage ids and labels, unique
    transition ids, and that every transition source/target is a known stage id.

    Args:
        data: Parsed JSON (expected to be a dict with ``nodes`` and ``edges``)

    Returns:
        List of error messages (empty when the graph is valid)
    """
    if not isinstance(data, dict):
        return [f"Journey graph must be an object, got {type(data).__name__}"]

    errors: list[str] = []
    nodes = data.get("nodes")
    edges = data.get("edges")

    if not isinstance(nodes, list):
        errors.append("nodes must be a list")
        nodes = []
    if not isinstance(edges, list):
        errors.append("edges must be a list")
        edges = []

    stage_ids: set[str] = set()
    labels: set[str] = set()
    for index, node in enumerate(nodes):
        where = f"nodes[{index}]"
        if not isinstance(node, dict):
            errors.append(f"{where}: must be an object")
            continue
        node_id = node.get("id")
        label = node.get("label")
        if not _is_text(node_id):
            errors.append(f"{where}: id must be a non-empty string")
        elif node_id in stage_ids:
            errors.append(f"{where}: duplicate stage id '{node_id}'")
        else:
            stage_ids.add(node_id)
        if not _is_text(label):
            errors.append(f"{where}: label must be a non-empty string")
        elif label in labels:
            errors.append(f"{where}: duplicate stage label '{label}'")
        else:
            labels.add(label)
        _check_properties(node.get("properties"), where, errors)
        actions = node.get("properties", {}).get("actions") if isinstance(node.get("properties"), dict) else None
        if actions is not None and not (isinstance(actions, list) and all(isinstance(a, str) for a in actions)):
            errors.append(f"{where}: properties.actions must be a list of strings")

    edge_ids: set[str] = set()
    for index, edge in enumerate(edges):
        where = f"edges[{index}]"
        if not isinstance(edge, dict):
            errors.append(f"{where}: must be an object")
            continue
        edge_id = edge.get("id")
        if not _is_text(edge_id):
            errors.append(f"{where}: id must be a non-empty string")
        elif edge_id in edge_ids:
            errors.append(f"{where}: duplicate transition id '{edge_id}'")
        else:
            edge_ids.add(edge_id)
        for end in ("source", "target"):
            ref = edge.get(end)
            if not _is_text(ref):
                errors.append(f"{where}: {end} must be a non-empty string")
            elif ref not in stage_ids:
                errors.append(f"{where}: {end} '{ref}' does not match any stage id")
        if not isinstance(edge.get("label"), str):
            errors.append(f"{where}: label must be a string")
        _check_properties(edge.get("properties"), where, errors)

    return errors


def parse_journey_graph(data: Any) -> DonorJourneyGraph:
    """Validate raw journey data and build a ``DonorJourneyGraph``.

    Raises:
        InvalidJourneyGraphError: If the data fails structural validation
    """
    errors = validate_journey_graph(data)
    if errors:
        raise InvalidJourneyGraphError(errors)
    return DonorJourneyGraph.model_validate(data)
