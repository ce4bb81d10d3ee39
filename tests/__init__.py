"""
Partner Mediator tests.

Running Tests:
    # Unit and API tests (no database, Redis or model needed)
    pytest tests/unit tests/api -v

    # Live smoke tests against a running server
    MEDIATOR_URL=http://localhost:8000 pytest tests/e2e -v

Test Coverage:
    - Thread partitioning and starter policies
    - Summary detection
    - Partner stages
    - In-memory store
    - Finalization events
    - Completion coordination
    - Conversation driver
    - Mediation service
    - Therapist HTTP endpoints
"""
