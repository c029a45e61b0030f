"""HTTP surface for the decision coach chat."""
