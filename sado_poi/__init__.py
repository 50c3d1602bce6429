"""Sado POI ingestion: fetch area sheets, normalize rows, merge and cache POIs."""
