"""Business services; each wraps one or more repositories around a session."""
