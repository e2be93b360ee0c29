"""fieldops - field task lifecycle, geofencing, forwarding and route sequencing."""
