#!/usr/bin/env python3
"""
Seed script to create a demo call with a simulated conversation
"""

import asyncio
from datetime import datetime

DEMO_CALL_SID = "CA00000000000000000000000000demo"

SIMULATED_TRANSCRIPTS = [
    ("customer", "Hello, I need help with my order", 1.0),
    ("agent", "Hi! I'd be happy to help you with your order. Can you provide your order number?", 2.0),
    ("customer", "Yes, it's order number 12345", 2.0),
    ("agent", "Thank you! Let me look that up for you right away.", 2.0),
    ("customer", "I haven't received it yet and it's been a week", 2.0),
]


async def seed_demo_data():
    """Seed demo data for development"""
    from sqlalchemy import select

    from callrelay.config import settings
    from callrelay.database import SessionLocal, engine, Base
    from callrelay.llm.suggestions import SuggestionGenerator
    from callrelay.models.call import Call
    from callrelay.relay.filters import TranscriptFilter
    from callrelay.relay.registry import StreamingSession
    from callrelay.relay.store import CallStore
    from callrelay.relay.suggestions import SuggestionTrigger
    from callrelay.relay.writer import TranscriptWriter

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        result = await db.execute(select(Call).where(Call.call_sid == DEMO_CALL_SID))
        existing = result.scalar_one_or_none()

        if existing:
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo call...")

        call = Call(
            call_sid=DEMO_CALL_SID,
            customer_number="+15551234567",
            direction="inbound",
            status="in-progress",
            started_at=datetime.utcnow(),
        )
        db.add(call)
        await db.commit()

        print(f"Created call: {call.call_sid} (ID: {call.id})")

    store = CallStore()
    session = StreamingSession(call_sid=call.call_sid, call_id=call.id)
    writer = TranscriptWriter(store, TranscriptFilter(min_length=settings.min_transcript_length))

    trigger = None
    if settings.openai_api_key or settings.anthropic_api_key:
        trigger = SuggestionTrigger(
            SuggestionGenerator.from_settings(store, settings),
            store,
            cooldown=settings.suggestion_cooldown_seconds,
        )
    else:
        print("No LLM API key configured, suggestions will be skipped")

    written = 0
    for role, text, delay in SIMULATED_TRANSCRIPTS:
        await asyncio.sleep(delay)
        row = await writer.submit(session, role, text)
        if row is None:
            continue

        written += 1
        print(f"  {role}: {text}")
        if trigger is not None and role == "customer":
            trigger.maybe_trigger(session, text)

    if trigger is not None:
        await trigger.drain()

    suggestions = await store.recent_suggestions(call.id, limit=10)

    print(f"""
Demo data created successfully!

Call: {call.call_sid}
  ID: {call.id}
  Customer: {call.customer_number}

Transcripts: {written} written
Suggestions: {len(suggestions)} generated

Fetch them with:
  GET /calls/{call.id}/transcripts
  GET /calls/{call.id}/suggestions
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
