"""
Spa booking backend: bookings with therapist conflict checks, testimonials and simulated payments.
"""
