# Event bus subscribers.
#
#   auth_consumer     - evicts cached identities on token invalidation
#   catalog_consumer  - disables questions of deleted articles
