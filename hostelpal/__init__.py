"""HostelPal: hostel complaint ticketing API."""
