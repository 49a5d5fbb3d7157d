"""
Identity Agent

Turns a natural-language request into `{answer, commands}`.

CRITICAL BOUNDARIES:
- CAN: Answer questions from the identity data it is shown
- CAN: Propose structured commands (create_identity, add_task, ...)
- CANNOT: Change anything itself. Commands are applied by the
  CommandExecutor, which validates every one of them.
- CANNOT: Invent services, emails or payment details

The LLM is a TRANSLATOR, not an ORACLE.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from identity_hub.config import get_settings
from identity_hub.models.commands import AgentCommand, AgentResponse, CommandType

logger = structlog.get_logger(__name__)

FALLBACK_ANSWER = "Sorry, I couldn't process that request right now."

COMMAND_REFERENCE = """\
- create_identity: { "type": "create_identity", "payload": { "name": "...", "type": "personal | business | project | other", "description": "..." } }
- add_task: { "type": "add_task", "identityName": "...", "payload": { "title": "...", "dueDate": "YYYY-MM-DD", "notes": "..." } }
- complete_task: { "type": "complete_task", "identityName": "...", "payload": { "taskTitle": "...", "taskId": "..." } }
- add_subscription: { "type": "add_subscription", "identityName": "...", "payload": { "name": "...", "amount": 9.99, "currency": "GBP", "frequency": "monthly | yearly", "nextBillingDate": "YYYY-MM-DD" } }
- add_service: { "type": "add_service", "identityName": "...", "payload": { "name": "...", "category": "...", "url": "...", "notes": "..." } }
- add_admin_link: { "type": "add_admin_link", "identityName": "...", "payload": { "label": "...", "url": "...", "category": "...", "notes": "..." } }
- update_identity: { "type": "update_identity", "identityName": "...", "payload": { "name": "...", "type": "...", "description": "..." } }
- delete_identity: { "type": "delete_identity", "identityName": "...", "payload": {} }
- add_email_to_identity: { "type": "add_email_to_identity", "identityName": "...", "payload": { "email": "...", "label": "Primary", "isPrimary": true } }
- update_email: { "type": "update_email", "payload": { "emailId": "...", "address": "...", "label": "...", "isPrimary": true } }
- delete_email: { "type": "delete_email", "payload": { "emailId": "..." } }
- create_service: { "type": "create_service", "identityName": "...", "payload": { "name": "...", "category": "...", "amount": 9.99, "currency": "GBP", "billingCycle": "monthly | yearly | quarterly | weekly | one-time | none", "status": "active | trial | cancelled", "nextBillingDate": "YYYY-MM-DD", "websiteUrl": "...", "emailId": "...", "loginEmail": "..." } }
- update_service: { "type": "update_service", "payload": { "serviceId": "...", "name": "...", "status": "...", "amount": 9.99, "currency": "GBP", "loginEmail": "..." } }
- delete_service: { "type": "delete_service", "payload": { "serviceId": "..." } }
- Notes that change nothing: flag_financial_item, security_alert, flag_ambiguous_identity, suggest_new_identity, update_usage_attribution, update_service_ownership, note_shared_usage, link_service_identity. Shape: { "type": "...", "payload": { ... } }"""



def build_prompt(query: str, context: dict[str, Any], today: Optional[str] = None) -> str:
    """The full prompt: role, command contract, data context and the query."""
    return f"""You are the assistant for a personal "Identity & Services Command Center".
You can see the user's identities, email accounts, services and per-identity
modules (tasks, subscriptions, admin links) as JSON below.

Your goal is to:
1. Answer the user's question strictly from this data.
2. If the user asks for a change (create, add, complete...), emit commands.

Supported commands:
{COMMAND_REFERENCE}

Rules:
- Always set "identityName" when the user names an identity ("for my Studio identity").
- A command may refer to an identity created by an earlier command in the same list.
- Never fabricate emails, names or payment details.
- Only emit commands when a change is asked for. For lookups, "commands" is [].
- Dates are ISO (YYYY-MM-DD).{f' Today is {today}.' if today else ''}

Respond with a JSON object ONLY:
{{"answer": "Markdown answer for the user", "commands": [ ... ]}}

Data context:
{json.dumps(context, indent=2, default=str)}

User request: "{query}"
"""


def parse_agent_response(text: str) -> AgentResponse:
    """
    Parse the model's reply into an AgentResponse.

    Invalid command entries are dropped individually. If no JSON object
    can be found at all, the raw text becomes the answer.
    """
    text = (text or "").strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return AgentResponse(answer=text or FALLBACK_ANSWER, commands=[])

    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        logger.warning("agent_response_not_json", preview=text[:200])
        return AgentResponse(answer=text, commands=[])

    if not isinstance(data, dict):
        return AgentResponse(answer=text, commands=[])

    raw_commands = data.get("commands") or []
    if not isinstance(raw_commands, list):
        raw_commands = []

    commands: list[AgentCommand] = []
    for raw in raw_commands:
        if not isinstance(raw, dict):
            continue
        # Older prompts used "action" instead of "type"
        if "type" not in raw and "action" in raw:
            raw = {**raw, "type": raw["action"]}
        try:
            commands.append(AgentCommand.model_validate(raw))
        except ValidationError as e:
            logger.warning("agent_command_dropped", error=str(e))

    answer = data.get("answer")
    return AgentResponse(
        answer=answer if isinstance(answer, str) else json.dumps(answer or ""),
        commands=commands,
    )


class IdentityAgent:
    """
    Gemini-backed agent producing the `{answer, commands}` envelope.

    BOUNDARIES:
    - NEVER persists data
    - ALWAYS returns an AgentResponse, even when the model call fails
    """

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: A preconfigured GenerativeModel. Built from settings if None.
        """
        if model is None:
            self._settings = get_settings().gemini
            self._configure_genai()
        else:
            self._model = model

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    async def respond(
        self,
        query: str,
        context: dict[str, Any],
        today: Optional[str] = None,
    ) -> AgentResponse:
        """Ask the model and parse its reply."""
        prompt = build_prompt(query, context, today)
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text
        except Exception as e:
            logger.error("agent_call_failed", error=str(e))
            return AgentResponse(answer=FALLBACK_ANSWER, commands=[])

        parsed = parse_agent_response(text)
        known = {t.value for t in CommandType}
        logger.info(
            "agent_responded",
            commands=len(parsed.commands),
            unknown_types=[c.type for c in parsed.commands if c.type not in known],
        )
        return parsed
