"""Chat orchestration and response assembly."""
