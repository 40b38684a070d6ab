"""Built-in prompt schemas for each pipeline phase, and the prompts built between phases."""

import json
from typing import Any, Optional

from ..models import DeepPhase, OutputField, PromptSchema

META_PROMPT = (
    "You are the META-ANALYSIS agent. Read the seed text and identify what is really "
    "being asked, the domain, how hard it is, and the traps a careless solver would fall into."
)

RETRIEVAL_PROMPT = (
    "You are the RETRIEVAL agent. Extract every fact, entity and constraint from the seed "
    "text that a correct answer depends on. Do not solve the problem."
)

DERIVATION_PROMPT = (
    "You are the DERIVATION agent. Work out the logical steps from the seed text to a "
    "conclusion. Keep each step short and checkable."
)

WRITER_PROMPT = (
    "You are the FINAL SYNTHESIS agent. Merge the sub-agent reports into one continuous "
    "reasoning trace written with stenographic symbols (→, ↺, ∴, ●, ⚠)."
)

REWRITER_PROMPT = (
    "You are the REWRITER agent. Given a query and a reasoning trace, write the final, "
    "high-quality answer the trace supports."
)

RESPONDER_PROMPT = (
    "You are the RESPONDER in a multi-turn conversation. Answer the latest user message "
    "with careful symbolic reasoning followed by a clear answer."
)

USER_AGENT_PROMPT = (
    "You play a curious USER. Given the conversation so far, ask one natural follow-up "
    "question that digs deeper into the last answer."
)

CONVERTER_PROMPT = (
    "You are the CONVERTER agent. Turn the raw reasoning trace into a clean stenographic "
    "reasoning trace (→, ↺, ∴, ●, ⚠), or reconstruct the missing trace that leads from the "
    "user query to the assistant response."
)

DEFAULT_SCHEMAS: dict[DeepPhase, PromptSchema] = {
    DeepPhase.META: PromptSchema(prompt=META_PROMPT, output=[
        OutputField(name="intent", description="What the seed is really asking for"),
        OutputField(name="domain", description="Subject area"),
        OutputField(name="complexity", description="Low, medium or high, with a reason", optional=True),
        OutputField(name="traps", description="Likely mistakes and misreadings"),
    ]),
    DeepPhase.RETRIEVAL: PromptSchema(prompt=RETRIEVAL_PROMPT, output=[
        OutputField(name="facts", description="Facts stated or implied by the seed"),
        OutputField(name="constraints", description="Conditions the answer must satisfy"),
        OutputField(name="entities", description="Named things the seed refers to", optional=True),
    ]),
    DeepPhase.DERIVATION: PromptSchema(prompt=DERIVATION_PROMPT, output=[
        OutputField(name="steps", description="Ordered logical steps"),
        OutputField(name="conclusion_preview", description="Where the steps lead"),
    ]),
    DeepPhase.WRITER: PromptSchema(prompt=WRITER_PROMPT, output=[
        OutputField(name="query", description="The question being answered", optional=True),
        OutputField(name="reasoning", description="Single continuous stenographic reasoning trace"),
    ]),
    DeepPhase.REWRITER: PromptSchema(prompt=REWRITER_PROMPT, output=[
        OutputField(name="answer", description="Final refined answer"),
    ]),
    DeepPhase.RESPONDER: PromptSchema(prompt=RESPONDER_PROMPT, output=[
        OutputField(name="reasoning", description="Step-by-step symbolic reasoning"),
        OutputField(name="answer", description="Answer to the latest user message"),
    ]),
    DeepPhase.USER_AGENT: PromptSchema(prompt=USER_AGENT_PROMPT, output=[
        OutputField(name="follow_up_question", description="The next question the user asks"),
    ]),
    DeepPhase.CONVERTER: PromptSchema(prompt=CONVERTER_PROMPT, output=[
        OutputField(name="reasoning", description="The rewritten reasoning trace"),
        OutputField(name="answer", description="The final answer content", optional=True),
    ]),
}


def default_schema(phase: DeepPhase) -> PromptSchema:
    """Built-in schema for a phase."""
    return DEFAULT_SCHEMAS[phase]


def _report(result: Any) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False)


def build_writer_prompt(
    seed: str,
    expected_answer: Optional[str],
    meta: Any,
    retrieval: Any,
    derivation: Any,
) -> str:
    """Aggregate the three analysis reports into the synthesis prompt."""
    return f"""
# SYSTEM ORCHESTRATION REPORT
You are the [FINAL SYNTHESIS AGENT]. Your inputs are the reports from three specialized sub-agents (Meta-Analysis, Retrieval, Derivation) analyzing the [ORIGINAL SEED].

## 1. SOURCE DATA
[ORIGINAL SEED]
{seed}

[FINAL ANSWER]
{expected_answer or ""}

## 2. AGENT REPORTS
### PHASE 1: META-ANALYSIS (Intent & Traps)
{_report(meta)}

### PHASE 2: RETRIEVAL (Facts & Constraints)
{_report(retrieval)}

### PHASE 3: DERIVATION (Logical Steps)
{_report(derivation)}

## 3. SYNTHESIS INSTRUCTION
Your goal is to unify these insights into a SINGLE, PERFECT "Stenographic Reasoning Trace" and final answer.

**MANDATORY OUTPUT FORMAT (JSON ONLY)**
You must output a single valid JSON object. Do NOT wrap it in markdown code blocks.
{{
  "reasoning": "A single continuous string using stenographic symbols (→, ↺, ∴, ●, ⚠) combining Phase 2 constraints and Phase 3 logic."
}}
"""


def build_rewriter_prompt(query: Any, reasoning: Any) -> str:
    return f"""
[QUERY]:
{query or ""}

[REASONING TRACE]:
{reasoning}

Instructions: Based on the reasoning trace above, write the final high-quality response.
CRITICAL: Output valid JSON only. Format: {{ "answer": "Your final refined answer string here" }}
"""


def build_user_agent_prompt(transcript: str) -> str:
    return f"Conversation so far:\n{transcript}\n\nGenerate a follow-up question."


def build_responder_prompt(transcript: str, question: str) -> str:
    return (
        f"Previous conversation:\n{transcript}\n\n[USER]: {question}\n\n"
        "Provide a detailed response using symbolic reasoning."
    )


def build_rewrite_prompt(user_query: Optional[str], reasoning: str, response: str) -> str:
    """
    Input for regenerating one assistant message's reasoning.

    With an original trace the model rewrites it; without one it reconstructs
    a trace that connects the query to the response.
    """
    context = f"[USER QUERY]:\n{user_query}\n\n" if user_query else ""
    if reasoning:
        return f"{context}[RAW REASONING TRACE]:\n{reasoning}"
    return f"""
[TASK]: REVERSE ENGINEERING REASONING
[INSTRUCTION]: Analyze the [USER QUERY] and the [ASSISTANT RESPONSE]. Generate a detailed stenographic reasoning trace (<think>...</think>) that logically connects the query to the response.
{context}
[ASSISTANT RESPONSE]:
{response}
"""


def build_converter_input(rewrite_prompt: str) -> str:
    return f"[INPUT LOGIC START]\n{rewrite_prompt}\n[INPUT LOGIC END]"
