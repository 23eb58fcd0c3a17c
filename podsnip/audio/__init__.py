"""Audio staging and transcoding."""
