"""parcelops: offline-first back office for a branch-based parcel courier."""

__version__ = "0.1.0"
