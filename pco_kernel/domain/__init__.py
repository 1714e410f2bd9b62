"""Pure domain layer: value objects, DTOs, enums and events. Zero I/O."""
