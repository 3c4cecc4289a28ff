"""Network components: scenario differences, distances and buffer queries."""
