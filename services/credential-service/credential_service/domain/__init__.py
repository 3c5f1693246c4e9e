"""Account aggregate, contracts, errors, and workflows."""
