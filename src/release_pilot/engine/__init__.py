"""Pipeline engine, stage definitions and hook loading."""
