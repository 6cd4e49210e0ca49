"""Knowledge loading."""
