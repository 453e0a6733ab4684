"""Classification, rendering and encoding stages of the normalization pipeline."""
