"""Resources app package.

Holds the bookable physical resources (rooms, labs, equipment) together
with the two non-booking sources of occupation the scheduling engine has to
respect: open resource issues and the fixed weekly timetable.
"""
