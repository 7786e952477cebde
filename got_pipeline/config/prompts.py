"""Model prompt templates for pipeline stages."""

# Prompts are filled with str.format, so literal braces are escaped as {{ }}
JSON_ONLY_INSTRUCTION = """
CRITICAL: You MUST respond with ONLY a valid JSON object.
- Do NOT include any thinking, reasoning, or explanation.
- Do NOT use markdown code blocks.
- Start your response directly with the opening brace
- No text before or after the JSON."""

SYSTEM_PROMPT = """You are a scientific research assistant working through a staged Graph-of-Thoughts analysis.
Be precise, cite evidence where you can, and state uncertainty explicitly."""

INITIALIZATION_PROMPT = """Analyze the following research question and identify its scientific framing.

RESEARCH QUESTION:
---
{query}
---

Identify:
1. The primary research field
2. Secondary fields that the question touches
3. Concrete research objectives
4. Practical constraints (data, ethics, time, scope)

Respond with ONLY this JSON structure (no other text):
{{
  "field": "Primary field name",
  "secondary_fields": ["Field A", "Field B"],
  "objectives": ["Objective 1", "Objective 2"],
  "constraints": ["Constraint 1"]
}}
""" + JSON_ONLY_INSTRUCTION

DECOMPOSITION_PROMPT = """Decompose the research task below into analysis dimensions.

RESEARCH QUESTION: {query}
FIELD: {field}
OBJECTIVES: {objectives}

Cover each of these dimensions on its own line, formatted as "Dimension: analysis":
- Scope
- Objectives
- Constraints
- Data Needs
- Use Cases
- Potential Biases
- Knowledge Gaps

Leave a blank line between dimensions."""

HYPOTHESIS_PROMPT = """Generate between 3 and 5 testable hypotheses for one dimension of a research task.

FIELD: {field}
DIMENSION: {dimension}
DIMENSION ANALYSIS: {dimension_content}

For every hypothesis N use exactly this layout:
Hypothesis N: <statement>
Falsification N: <observable result that would refute it>
Confidence N: [empirical, theoretical, methodological, consensus]

Confidence values are numbers between 0 and 1."""

EVIDENCE_SEARCH_PROMPT = """Find published evidence bearing on the following hypothesis in {field}.

HYPOTHESIS: {hypothesis}
FALSIFICATION CRITERIA: {falsification}

Report study designs, sample sizes, effect sizes, p-values and peer-review status.
Use labelled lines where possible, e.g. "Sample size: 1200", "Effect size: 0.45", "P value: 0.01"."""

EVIDENCE_ANALYSIS_PROMPT = """Assess how the evidence below bears on the hypothesis.

HYPOTHESIS: {hypothesis}

EVIDENCE:
---
{evidence}
---

State whether the evidence supports, contradicts, correlates with, causes or precedes the hypothesised effect.
Comment on methodological rigor, consensus, confounding and the statistical power of the studies."""

COMPOSITION_PROMPT = """Compose a structured synthesis of the research findings below.

FIELD: {field}
RESEARCH QUESTION: {query}

HYPOTHESES:
{hypotheses}

EVIDENCE (cite by number in square brackets):
{evidence}

Respond with ONLY this JSON structure (no other text):
{{
  "sections": [
    {{
      "title": "Section title",
      "content": "Synthesis text with citations like [1] and [2]",
      "citations": [1, 2]
    }}
  ]
}}
""" + JSON_ONLY_INSTRUCTION

AUDIT_PROMPT = """Audit the research graph summarised below for scientific quality.

FIELD: {field}

GRAPH SUMMARY:
{summary}

Check for bias, statistical rigor, falsifiability of the hypotheses and unjustified causal claims.

Respond with ONLY this JSON structure (no other text):
{{
  "passed": true,
  "issues": ["Issue description"],
  "checks": {{
    "bias": true,
    "statistical_rigor": true,
    "falsifiability": true,
    "causality": true
  }},
  "bias_flags": ["selection bias"]
}}
""" + JSON_ONLY_INSTRUCTION

FINAL_REPORT_PROMPT = """Write the final research report.

RESEARCH QUESTION: {query}
FIELD: {field}
OBJECTIVES: {objectives}

SYNTHESIS:
{synthesis}

AUDIT:
{audit}

Structure the report with an executive summary, findings with citations, limitations and recommendations."""
