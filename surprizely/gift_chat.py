"""
Gift chat and quiz recommendations.

The chat endpoint forwards a message (plus recent history) to OpenAI and returns
the assistant's JSON reply as text. The quiz first matches the local catalog on
budget and interests, asks the LLM when nothing matches, and finally falls back
to the first few catalog products.
"""
import json
import logging
import re
from typing import Optional

from flask import jsonify
from openai import OpenAI, OpenAIError

import settings
from errors import ExternalServiceError
from schemas import ChatRequest, QuizRequest
from shop_context import get_store, parse_body

logger = logging.getLogger("gift_chat")

GIFT_CHAT_SYSTEM_PROMPT = (
    "You are a helpful gift suggestion assistant. Make suggestions based on the person's "
    "interests and preferences. Keep responses concise and focused on gift ideas. "
    "Always answer with a JSON object."
)

QUIZ_PROMPT = """
A shopper answered a gift recommendation quiz: {answers}.
Here are the products in the catalog: {catalog}.
Recommend specific products from the catalog that fit the relationship ({relationship}),
interests ({interests}) and budget ({budget}).
Return JSON: {{"recommendations": [{{"id": <product id>, "explanation": "<one sentence>"}}]}}
""".strip()

CHAT_FAILURE_MESSAGE = "Failed to get gift suggestions"
QUIZ_FALLBACK_EXPLANATION = "Based on your quiz answers, here are some options that might interest you."
QUIZ_MAX_RESULTS = 3

# Upper bound in dollars; None means no cap.
BUDGET_CAPS = {
    "under $25": 25,
    "$25-$50": 50,
    "$50-$100": 100,
    "over $100": None,
}

_client: Optional[OpenAI] = None


def _get_client() -> OpenAI:
    global _client
    if not settings.OPENAI_API_KEY:
        logger.error("OPENAI_API_KEY is not set; gift chat is unavailable")
        raise ExternalServiceError(CHAT_FAILURE_MESSAGE)
    if _client is None:
        _client = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


def _call_llm(messages: list) -> str:
    """Chat Completions call in JSON mode; returns the raw reply text."""
    chat_messages = []
    for m in messages:
        role = m.get("role", "user")
        content = m.get("content", "")
        if role in ("system", "user", "assistant") and content:
            chat_messages.append({"role": role, "content": content})

    try:
        resp = _get_client().chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=chat_messages,
            temperature=0.2,
            response_format={"type": "json_object"},
        )
    except OpenAIError as e:
        logger.warning("OpenAI request failed: %s", e)
        raise ExternalServiceError(CHAT_FAILURE_MESSAGE) from e
    return (resp.choices[0].message.content or "").strip()


def _normalize_history(history, max_turns=16):
    out = []
    for h in history or []:
        role = str(h.get("role", "")).strip().lower()
        content = str(h.get("content", "")).strip()
        if not content or role not in ("user", "assistant"):
            continue
        out.append({"role": role, "content": content})
    return out[-max_turns:]


def _safe_json_loads(s: str):
    try:
        return json.loads(s)
    except ValueError:
        return None


def _extract_first_json_object(text: str):
    if not isinstance(text, str) or not text.strip():
        return None
    t = text.strip()
    if t.startswith("{") and t.endswith("}"):
        obj = _safe_json_loads(t)
        if isinstance(obj, dict):
            return obj
    start = t.find("{")
    if start < 0:
        return None
    depth = 0
    for i in range(start, len(t)):
        if t[i] == "{":
            depth += 1
        elif t[i] == "}":
            depth -= 1
            if depth == 0:
                obj = _safe_json_loads(t[start : i + 1])
                return obj if isinstance(obj, dict) else None
    return None


def _compact_ui_text(reply: str) -> str:
    reply = (reply or "").strip()
    reply = reply.replace("\r\n", "\n").replace("\r", "\n")
    return re.sub(r"\n{2,}", "\n", reply)


def chat():
    payload = parse_body(ChatRequest)
    history = _normalize_history([t.model_dump() for t in payload.history])
    messages = [{"role": "system", "content": GIFT_CHAT_SYSTEM_PROMPT}]
    messages.extend(history)
    messages.append({"role": "user", "content": payload.message})
    reply = _call_llm(messages)
    return jsonify({"message": _compact_ui_text(reply)})


# -------------------------
# Quiz
# -------------------------
def budget_cap_cents(budget) -> Optional[int]:
    """Translate a quiz budget answer into a price cap in cents (None = no cap)."""
    if budget is None or isinstance(budget, bool):
        return None
    if isinstance(budget, (int, float)):
        return int(budget * 100) if budget > 0 else None
    text = str(budget).strip().lower()
    if not text:
        return None
    if text in BUDGET_CAPS:
        cap = BUDGET_CAPS[text]
        return cap * 100 if cap is not None else None
    amounts = re.findall(r"\d+(?:\.\d+)?", text.replace(",", ""))
    if not amounts or text.startswith("over"):
        return None
    return int(float(amounts[-1]) * 100)


def interest_score(product, interests: str) -> int:
    interests = interests.lower()
    score = 0
    if interests in product.name.lower():
        score += 3
    if interests in (product.description or "").lower():
        score += 2
    if product.category and interests in product.category.lower():
        score += 2
    return score


def match_products(products: list, answers: QuizRequest) -> list:
    """Filter by budget, then rank by interest score and keep the top matches."""
    matched = list(products)
    cap = budget_cap_cents(answers.budget)
    if cap is not None:
        matched = [p for p in matched if p.price <= cap]
    interests = (answers.interests or "").strip()
    if interests:
        matched = sorted(matched, key=lambda p: interest_score(p, interests), reverse=True)
        matched = matched[:QUIZ_MAX_RESULTS]
    return matched


def _recommendation(product, explanation: str) -> dict:
    row = product.to_dict()
    row["explanation"] = explanation
    return row


def _llm_recommendations(products: list, answers: QuizRequest) -> list:
    catalog = [
        {"id": p.id, "name": p.name, "description": p.description, "price": p.price / 100, "category": p.category}
        for p in products
    ]
    prompt = QUIZ_PROMPT.format(
        answers=json.dumps(answers.model_dump(by_alias=True)),
        catalog=json.dumps(catalog),
        relationship=answers.relationship or "",
        interests=answers.interests or "",
        budget=answers.budget if answers.budget is not None else "",
    )
    raw = _call_llm([
        {"role": "system", "content": GIFT_CHAT_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ])
    parsed = _extract_first_json_object(raw) or {}
    by_id = {p.id: p for p in products}
    out = []
    for item in parsed.get("recommendations") or []:
        if not isinstance(item, dict):
            continue
        try:
            product = by_id.get(int(item.get("id")))
        except (TypeError, ValueError):
            continue
        if product is None:
            continue
        out.append(_recommendation(product, str(item.get("explanation") or QUIZ_FALLBACK_EXPLANATION)))
        if len(out) >= QUIZ_MAX_RESULTS:
            break
    return out


def recommend(products: list, answers: QuizRequest) -> dict:
    if not products:
        return {"recommendations": [], "source": "catalog"}

    matched = match_products(products, answers)
    if matched:
        explanation = (
            f"This matches your {answers.relationship or 'recipient'} who likes "
            f"{answers.interests or 'a bit of everything'} and fits your budget of {answers.budget or 'any amount'}."
        )
        return {"recommendations": [_recommendation(p, explanation) for p in matched], "source": "catalog"}

    try:
        picks = _llm_recommendations(products, answers)
    except ExternalServiceError as e:
        logger.info("Quiz LLM fallback unavailable: %s", e.message)
        picks = []
    if picks:
        return {"recommendations": picks, "source": "assistant"}

    return {
        "recommendations": [_recommendation(p, QUIZ_FALLBACK_EXPLANATION) for p in products[:QUIZ_MAX_RESULTS]],
        "source": "fallback",
    }


def quiz():
    answers = parse_body(QuizRequest)
    return jsonify(recommend(get_store().get_products(), answers))
