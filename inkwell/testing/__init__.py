from inkwell.testing.services import (
    MockCache,
    MockDatabase,
    ci_mode,
    create_mock_cache,
    create_mock_db,
    validate_services,
)

__all__ = ["MockCache", "MockDatabase", "ci_mode", "create_mock_cache", "create_mock_db", "validate_services"]
