"""Senate politics: event catalog, eligibility evaluation and the round engine."""
