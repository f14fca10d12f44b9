"""Medication reminder module (API, scheduler, fan-out, channel senders).

Runs as a single service process: armed wake-ups live in the event loop as
asyncio tasks, medication records live in Firestore, and every reminder is
fanned out to push, email, SMS and WhatsApp concurrently.
"""
