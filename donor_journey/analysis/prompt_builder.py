"""
Prompt builders for the per-donor analysis calls.

Each builder loads its versioned template and fills it with sections rendered
from the donor's context. History is bounded by AnalysisConfig so prompt size
stays flat no matter how much history a donor has.
"""

from typing import Optional

from ..config import AnalysisConfig
from ..llm.prompt_loader import PromptInfo, load_prompt
from ..models.analysis import ActionPredictionInput, StageClassificationInput, StageTransitionInput
from ..models.donor import ACTION_TYPES, CommunicationThread, Donation, DonorAnalysisInfo
from ..models.journey import DonorJourneyGraph, Stage

NO_HISTORY = "No significant donation or communication history found."


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def format_donor_info(donor_info: DonorAnalysisInfo) -> str:
    return f"- ID: {donor_info.id}\n- Name: {donor_info.name}\n- Email: {donor_info.email or 'N/A'}"


def format_stage(stage: Optional[Stage], stage_id: str) -> str:
    if stage is None:
        return f"- ID: {stage_id}\n- Label: Unknown\n- Description: N/A"
    return f"- ID: {stage.id}\n- Label: {stage.label}\n- Description: {stage.properties.description or 'N/A'}"


def format_donor_history(
    communication_history: list[CommunicationThread],
    donation_history: list[Donation],
    config: AnalysisConfig,
) -> str:
    """Render recent donations and communications, newest first.

    Both lists are expected newest first already; only the head of each is used.
    """
    lines = ["Relevant Donor History:"]

    if donation_history:
        lines.append("")
        lines.append(f"Recent Donations (up to {config.prompt_max_donations}, newest first):")
        for donation in donation_history[: config.prompt_max_donations]:
            project = f" for project '{donation.project_name}'" if donation.project_name else ""
            lines.append(f"- Donated {donation.amount_display} on {donation.date.strftime('%Y-%m-%d')}{project}.")

    threads = [t for t in communication_history[: config.prompt_max_threads] if t.messages]
    if threads:
        lines.append("")
        lines.append(
            f"Recent Communications (up to {config.prompt_max_threads} threads, "
            f"{config.prompt_messages_per_thread} messages per thread, newest first):"
        )
        for thread_index, thread in enumerate(threads, 1):
            lines.append(f"  Thread {thread_index} ({thread.channel}):")
            for message_index, message in enumerate(thread.messages[: config.prompt_messages_per_thread], 1):
                sender = ""
                if message.from_donor is not None:
                    sender = " [from donor]" if message.from_donor else " [from organization]"
                content = _truncate(message.content, config.prompt_max_message_chars)
                lines.append(f"    - Message {message_index}{sender}: {content}")

    if not donation_history and not communication_history:
        lines.append(NO_HISTORY)

    return "\n".join(lines)


def format_journey_graph(graph: DonorJourneyGraph) -> str:
    """Render every stage and every transition."""
    lines = ["Donor Journey Stages Definition:"]
    for node in graph.nodes:
        lines.append(
            f"- Stage ID: {node.id}, Label: {node.label}, Description: {node.properties.description or 'N/A'}"
        )
    lines.append("")
    lines.append("Possible Transitions (Edges):")
    for edge in graph.edges:
        lines.append(
            f"- From stage '{edge.source}' to stage '{edge.target}' (Condition/Trigger: {edge.label or 'N/A'})"
        )
    return "\n".join(lines)


def format_candidate_transitions(graph: DonorJourneyGraph, stage_id: str) -> tuple[str, str]:
    """Render the outgoing transitions of ``stage_id`` and the stages they lead to.

    Returns:
        (transitions_text, stages_text)
    """
    edges = graph.outgoing_transitions(stage_id)
    if not edges:
        return "- None (this stage has no outgoing transitions)", "- None"

    transition_lines = [
        f"- {edge.id}: to stage '{edge.target}' (Condition/Trigger: {edge.label or 'N/A'}) "
        f"{edge.properties.description}".rstrip()
        for edge in edges
    ]

    stage_lines = []
    seen: set[str] = set()
    for edge in edges:
        if edge.target in seen:
            continue
        seen.add(edge.target)
        target = graph.get_stage(edge.target)
        if target is not None:
            stage_lines.append(
                f"- Stage ID: {target.id}, Label: {target.label}, Description: {target.properties.description}"
            )
    return "\n".join(transition_lines), "\n".join(stage_lines) or "- None"


def _common_sections(
    input_data: StageClassificationInput, config: AnalysisConfig
) -> dict[str, str]:
    return {
        "donor_info": format_donor_info(input_data.donor_info),
        "journey_graph": format_journey_graph(input_data.donor_journey_graph),
        "donor_history": format_donor_history(
            input_data.communication_history, input_data.donation_history, config
        ),
    }


def build_stage_classification_prompt(
    input_data: StageClassificationInput, config: Optional[AnalysisConfig] = None
) -> tuple[str, PromptInfo]:
    """Build the classification prompt. Returns (prompt_text, prompt_info)."""
    config = config or AnalysisConfig()
    prompt = load_prompt("stage_classification")
    return prompt.render(**_common_sections(input_data, config)), prompt


def build_stage_transition_prompt(
    input_data: StageTransitionInput, config: Optional[AnalysisConfig] = None
) -> tuple[str, PromptInfo]:
    """Build the transition prompt, listing only the current stage's outgoing edges as candidates."""
    config = config or AnalysisConfig()
    graph = input_data.donor_journey_graph
    candidate_transitions, candidate_stages = format_candidate_transitions(graph, input_data.current_stage_id)
    prompt = load_prompt("stage_transition")
    text = prompt.render(
        current_stage=format_stage(graph.get_stage(input_data.current_stage_id), input_data.current_stage_id),
        candidate_transitions=candidate_transitions,
        candidate_stages=candidate_stages,
        **_common_sections(input_data, config),
    )
    return text, prompt


def build_action_prediction_prompt(
    input_data: ActionPredictionInput, config: Optional[AnalysisConfig] = None
) -> tuple[str, PromptInfo]:
    """Build the action prediction prompt."""
    config = config or AnalysisConfig()
    graph = input_data.donor_journey_graph
    prompt = load_prompt("action_prediction")
    text = prompt.render(
        current_stage=format_stage(graph.get_stage(input_data.current_stage_id), input_data.current_stage_id),
        action_types=", ".join(f'"{t}"' for t in ACTION_TYPES),
        **_common_sections(input_data, config),
    )
    return text, prompt
