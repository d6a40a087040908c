"""HTTP layer: job control endpoints and the status event stream."""
