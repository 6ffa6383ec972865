"""Flashbacks backend: photo album slideshow, transit departures and weather trends."""
