"""Task queues, the time-slice engine, results and logger sinks."""
