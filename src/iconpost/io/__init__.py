"""Source image download, decoding and artifact output."""
