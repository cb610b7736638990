"""Project archive reading, config mapping and writing."""
