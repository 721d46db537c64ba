"""Chat request types, orchestration, and the per-request pipeline."""
