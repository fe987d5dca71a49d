"""Status snapshot, status file and the logging bridge between them."""
