"""Search orchestration and its request/response models."""
