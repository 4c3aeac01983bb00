"""Bootstrap installer for CommandStation-EX releases."""
