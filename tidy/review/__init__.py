"""Review view-model: editor-facing shape of an analysis run."""
