"""Sample package scanned by the testskel test-suite."""
