"""HTTP plumbing shared by every blueprint."""
