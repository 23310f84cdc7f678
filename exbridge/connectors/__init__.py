"""Worker-side connectors to the external exchange library."""
