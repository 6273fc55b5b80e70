"""Services package: storage, identity and notification collaborators."""
