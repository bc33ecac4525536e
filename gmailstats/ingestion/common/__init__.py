"""Provider-agnostic models, errors, storage and pipelines."""
