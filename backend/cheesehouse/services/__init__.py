"""Domain services: phone rules, game rules, vouchers, notifications, stats.

Routes and socket handlers import from here, keeping HTTP concerns
separated from the promotion workflow itself.
"""
