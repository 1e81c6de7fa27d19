from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Optional

from reportbot.core.config import settings
from reportbot.models.schemas import CompanyContext, LLMMessage

CHART_START = "<<<CHART_START>>>"
CHART_END = "<<<CHART_END>>>"

BANNER_RULE = "=" * 80
TABULAR_MARKERS = ("Table", "CSV", "rows")
HISTORY_ROLES = {"user", "assistant"}

CHART_GRAMMAR = (
    "When you identify data suitable for visualization from the uploaded files, "
    "include chart specifications in this format:\n"
    f"{CHART_START}\n"
    "{\n"
    '  "type": "bar|line|pie|doughnut",\n'
    '  "title": "Chart Title",\n'
    '  "data": {\n'
    '    "labels": ["Label1", "Label2", "Label3"],\n'
    '    "datasets": [{\n'
    '      "label": "Series Name",\n'
    '      "data": [10, 20, 30],\n'
    '      "backgroundColor": "#3B82F6"\n'
    "    }]\n"
    "  }\n"
    "}\n"
    f"{CHART_END}\n"
    "Emit valid JSON only between the markers and one object per chart."
)


def looks_tabular(documents_context: str) -> bool:
    """Approximate check for table-shaped data in the normalized context.

    True when any of ``TABULAR_MARKERS`` occurs as a case-sensitive substring.
    CSV and spreadsheet parses always carry such markers; prose that merely
    mentions "rows" also matches.
    """
    return any(marker in (documents_context or "") for marker in TABULAR_MARKERS)


def build_system_prompt(company: CompanyContext, include_graphs: bool) -> str:
    industry = company.industry or "company"
    focus = company.context or "business operations"
    prompt = (
        f"You are an expert analyst creating comprehensive reports for {company.name}, "
        f"a {industry} focused on {focus}.\n\n"
        "CRITICAL INSTRUCTIONS:\n"
        "1. ALWAYS prioritize and reference the uploaded document data when provided\n"
        "2. Base your analysis on SPECIFIC data points, numbers, and metrics from the files\n"
        "3. If data is provided, DO NOT make up or assume information - use only what's in the documents\n"
        "4. Identify patterns, trends, and insights directly from the uploaded data\n"
        "5. Quote specific figures, percentages, and metrics from the documents\n\n"
        "When multiple documents are provided:\n"
        "- Treat them as a connected set of information and attribute facts to their FILE number\n"
        "- Look for relationships and correlations between different data sources\n"
        "- Prioritize recent data over older data when conflicts arise\n\n"
        "Output format:\n"
        "- Use clean HTML tags: <h2>, <h3>, <p>, <ul>, <ol>, <strong>, <em>, <table>\n"
        "- Structure your report with clear sections\n"
        "- Include an executive summary at the beginning\n"
        "- Provide specific, actionable recommendations\n"
        "- Always cite specific data points from the uploaded files\n"
    )
    if include_graphs:
        prompt += "\n" + CHART_GRAMMAR + "\n"
    prompt += (
        "\nRemember: when uploaded file content is present, use it as the PRIMARY source "
        "for your analysis and reference specific numbers and details from the files."
    )
    return prompt


def build_user_prompt(query: str, documents_context: str, include_graphs: bool) -> str:
    parts: List[str] = []
    if documents_context and documents_context.strip():
        parts.extend(
            [
                BANNER_RULE,
                "📊 UPLOADED DOCUMENT DATA - ANALYZE THIS CONTENT:",
                BANNER_RULE,
                "",
                documents_context,
                "",
                BANNER_RULE,
                "📋 USER REQUEST BASED ON THE ABOVE DATA:",
                BANNER_RULE,
                query,
                "",
                "⚠️ IMPORTANT: Base your analysis PRIMARILY on the uploaded document data above.",
                "Create insights, trends, and recommendations using the specific data provided.",
                "Reference specific numbers, metrics, and details from the uploaded files.",
            ]
        )
        if include_graphs and looks_tabular(documents_context):
            parts.append("📊 Create visualizations from the data tables in the uploaded files.")
    else:
        parts.extend(
            [
                "USER REQUEST:",
                query,
                "",
                "⚠️ Note: No specific document data was provided. "
                "Please create a general analysis based on the company context.",
            ]
        )
    return "\n".join(parts)


def _history_role(entry: Mapping[str, Any]) -> Optional[str]:
    role = entry.get("type") or entry.get("role")
    return role if isinstance(role, str) and role in HISTORY_ROLES else None


def _history_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, default=str)


def format_chat_history(history: Iterable[Mapping[str, Any]], limit: Optional[int] = None) -> List[LLMMessage]:
    """Window the chat history: newest ``limit`` entries first, then keep user/assistant turns."""
    limit = settings.chat_history_limit if limit is None else limit
    window = list(history or [])[-limit:] if limit > 0 else []
    messages: List[LLMMessage] = []
    for entry in window:
        if not isinstance(entry, Mapping):
            continue
        role = _history_role(entry)
        if role is None:
            continue
        messages.append(LLMMessage(role=role, content=_history_content(entry.get("content"))))
    return messages


def build_messages(
    query: str,
    documents_context: str,
    include_graphs: bool,
    history: Iterable[Mapping[str, Any]],
) -> List[LLMMessage]:
    messages = format_chat_history(history)
    messages.append(LLMMessage(role="user", content=build_user_prompt(query, documents_context, include_graphs)))
    return messages
