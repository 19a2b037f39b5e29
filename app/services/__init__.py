# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic for the Question aggregate:
#
#   question_service    - lifecycle, ownership rules, stats events
#   statistics_service  - read-only rollups (includes disabled questions)
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer (or a subscriber) controls the transaction
# boundary.
