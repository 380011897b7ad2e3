"""Domain services: lifecycle rules, task balancing, scoring, exports"""
