"""Pure squares logic: score normalization, axis digits, winners and payouts.

Nothing here opens a DB session or talks to Redis or FastAPI. Randomness and
timestamps are passed in, so the same inputs always derive the same winners.
"""
