"""Clinical application of the referral network backend.

Holds the models, services, serializers, views and route registrations
for hospitals, staff, patients, referrals, emergency access and the
audit trail.
"""
