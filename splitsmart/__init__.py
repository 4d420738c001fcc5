"""SplitSmart: shared receipt splitting backend."""
