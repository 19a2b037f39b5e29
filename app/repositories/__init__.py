# Repositories package.
#
#   question_repository  - find / count / aggregate / insert / update /
#                          cascading disable for Question
#
# Functions take an AsyncSession first and never commit.
