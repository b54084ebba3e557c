"""Pure domain types: request/bundle value objects and the error taxonomy."""
