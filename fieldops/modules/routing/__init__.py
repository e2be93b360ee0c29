"""Advisory route planning over a worker's open tasks."""
