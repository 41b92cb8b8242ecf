"""Image transformation pipeline: source, probe, classifier, planner, executor."""
