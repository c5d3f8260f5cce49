"""Key, translation and course persistence."""
