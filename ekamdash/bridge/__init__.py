"""Bridge to the build tool: wire codec and the stream reader."""
