"""Pure value objects and collaborator interfaces of the approval kernel."""
