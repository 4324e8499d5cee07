"""Base time units shared by the constant modules."""

BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND
