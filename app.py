"""
app.py
Streamlit Studio Management dashboard (classes, people, attendance, payments).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
import os
from datetime import date, timedelta
import pandas as pd
import streamlit as st

import db
import occupancy
import store
import utils
from models import DAYS_OF_WEEK, ValidationError, WaitlistProspect

logging.basicConfig(
    level=os.getenv("STUDIO_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

st.set_page_config(page_title="Studio Management", layout="wide")


def init_once():
    db.init_db()


def run_action(action, success: str) -> bool:
    """Run a store call; show rule violations instead of crashing the page."""
    try:
        action()
    except ValidationError as e:
        for msg in e.messages:
            st.error(msg)
        return False
    st.success(success)
    return True


# ---------- Lookups ----------

def session_labels(sessions) -> dict:
    activities = {a.id: a.name for a in store.load_activities()}
    return {
        s.id: f"{activities.get(s.activity_id, 'Class')} ({s.day_of_week} {s.time})"
        for s in sessions
    }


def person_options(people) -> dict:
    return {f"{p.name} ({p.phone}) - ID {p.id}": p.id for p in people}


def load_snapshot():
    return (
        store.load_people(),
        store.load_sessions(),
        store.load_attendance(),
        {s.id: s for s in store.load_spaces()},
    )


# ---------- Pages ----------

def today_page():
    st.header("📅 Today")

    people, sessions, attendance, spaces = load_snapshot()
    day = st.date_input("Date", value=date.today())
    weekday = DAYS_OF_WEEK[day.weekday()]
    todays = sorted((s for s in sessions if s.day_of_week == weekday), key=lambda s: s.time)
    labels = session_labels(sessions)

    snapshots = [
        occupancy.compute_daily_occupancy(s, day, people, attendance, spaces.get(s.space_id))
        for s in todays
    ]

    c1, c2, c3 = st.columns(3)
    c1.metric("Active people", sum(1 for p in people if p.status == "active"))
    c2.metric(f"Classes on {weekday}", len(todays))
    c3.metric("Expected attendance", sum(s.daily_occupancy for s in snapshots if not s.is_cancelled))

    st.divider()
    st.subheader("Occupancy")
    if snapshots:
        st.dataframe(utils.occupancy_frame(snapshots, labels), use_container_width=True, hide_index=True)
    else:
        st.caption(f"No classes on {weekday}.")

    st.divider()
    st.subheader("Waitlist opportunities")
    opportunities = occupancy.waitlist_opportunities(sessions, people, spaces.values())
    if not opportunities:
        st.caption("No freed slots with people waiting.")
    for opp in opportunities:
        session = opp["session"]
        st.markdown(f"**{labels[session.id]}**: {opp['free_slots']} free slot(s)")
        for entry, person in opp["entries"]:
            name = person.name if person else f"{entry.prospect.name} (new contact)"
            phone = person.phone if person else entry.prospect.phone
            col1, col2 = st.columns([3, 1])
            col1.write(f"{name} · {phone}")
            if col2.button("Enroll", key=f"promote_{entry.id}"):
                if run_action(lambda: store.enroll_from_waitlist(session.id, entry.id), "Enrolled."):
                    st.rerun()


def person_form(existing=None):
    tariffs = store.load_tariffs()
    levels = store.load_levels()
    tariff_opts = {"(none)": None} | {f"{t.name} ({t.price:.2f})": t.id for t in tariffs}
    level_opts = {"(none)": None} | {lv.name: lv.id for lv in levels}

    if existing:
        st.subheader(f"✏️ Edit Person (ID: {existing.id})")
    else:
        st.subheader("➕ Add Person")

    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Name", value=(existing.name if existing else ""))
        phone = st.text_input("Phone", value=(existing.phone if existing else ""))
        notes = st.text_area("Notes", value=((existing.notes or "") if existing else ""))
    with col2:
        tariff_keys = list(tariff_opts)
        tariff_label = st.selectbox(
            "Tariff",
            tariff_keys,
            index=(list(tariff_opts.values()).index(existing.tariff_id) if existing and existing.tariff_id in tariff_opts.values() else 0),
        )
        level_keys = list(level_opts)
        level_label = st.selectbox(
            "Level",
            level_keys,
            index=(list(level_opts.values()).index(existing.level_id) if existing and existing.level_id in level_opts.values() else 0),
        )
        status = st.selectbox(
            "Status", ["active", "inactive"],
            index=(0 if not existing or existing.status == "active" else 1),
        )

    errors = utils.validate_person_inputs(name, phone)
    for e in errors:
        st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors)):
        tariff_id, level_id = tariff_opts[tariff_label], level_opts[level_label]
        if existing:
            ok = run_action(
                lambda: store.update_person(existing.id, name, phone, tariff_id, level_id, notes, status),
                "Person updated.",
            )
        else:
            ok = run_action(lambda: store.add_person(name, phone, tariff_id, level_id, notes), "Person added.")
        if ok:
            st.rerun()


def people_page():
    st.header("👥 People")

    people, sessions, attendance, _ = load_snapshot()
    tariffs = {t.id: t for t in store.load_tariffs()}
    balances = occupancy.recovery_balances(people, attendance)

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/phone)").strip().lower()
        status_filter = st.selectbox("Status", ["All", "active", "inactive"])

    rows = []
    for p in people:
        if search and search not in p.name.lower() and search not in p.phone:
            continue
        if status_filter != "All" and p.status != status_filter:
            continue
        pay_status, overdue = utils.payment_status(p)
        tariff = tariffs.get(p.tariff_id)
        rows.append({
            "id": p.id,
            "name": p.name,
            "phone": p.phone,
            "tariff": tariff.name if tariff else "",
            "classes/week": occupancy.weekly_class_count(p.id, sessions),
            "payment": pay_status if overdue is None else f"{pay_status} ({overdue}d)",
            "debt": utils.debt_amount(p, tariff.price) if tariff else 0.0,
            "recovery credits": balances.get(p.id, 0),
            "on vacation today": occupancy.is_on_vacation(p, date.today()),
            "status": p.status,
        })
    df = pd.DataFrame(rows)
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.divider()
    by_id = {p.id: p for p in people}
    selected = st.selectbox("Person", ["(none)"] + [str(r["id"]) for r in rows])
    if selected != "(none)":
        person = by_id[int(selected)]
        labels = session_labels(sessions)

        st.subheader("Fixed classes")
        current = [s.id for s in sessions if person.id in s.person_ids]
        chosen = st.multiselect(
            "Sessions", options=list(labels), default=current, format_func=lambda sid: labels[sid]
        )
        if st.button("Save classes"):
            if run_action(lambda: store.set_person_sessions(person.id, chosen), "Classes updated."):
                st.rerun()

        st.subheader("Vacations")
        for vac in person.vacation_periods:
            c1, c2 = st.columns([3, 1])
            c1.write(f"{vac.start_date} → {vac.end_date}")
            if c2.button("Remove", key=f"vac_{vac.id}"):
                store.remove_vacation_period(person.id, vac.id)
                st.rerun()
        v1, v2 = st.columns(2)
        start = v1.date_input("From", value=date.today(), key="vac_from")
        end = v2.date_input("To", value=date.today() + timedelta(days=7), key="vac_to")
        if st.button("Add vacation"):
            if run_action(lambda: store.add_vacation_period(person.id, start, end), "Vacation added."):
                st.rerun()

        st.subheader("Danger zone")
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Edit"):
                st.session_state.edit_person_id = person.id
                st.rerun()
        with c2:
            delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
            if st.button("Delete", type="secondary", disabled=not delete_confirm):
                store.delete_person(person.id)
                st.success("Person deleted.")
                st.rerun()

    st.divider()
    if st.session_state.get("edit_person_id"):
        existing = store.load_person(st.session_state.edit_person_id)
        if existing:
            person_form(existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_person_id = None
            st.rerun()
    else:
        person_form(existing=None)


def sessions_page():
    st.header("🗓️ Sessions")

    people, sessions, attendance, spaces = load_snapshot()
    labels = session_labels(sessions)
    by_person = {p.id: p for p in people}

    for day in DAYS_OF_WEEK:
        day_sessions = sorted((s for s in sessions if s.day_of_week == day), key=lambda s: s.time)
        if not day_sessions:
            continue
        st.subheader(day)
        for s in day_sessions:
            snap = occupancy.compute_daily_occupancy(s, date.today(), people, attendance, spaces.get(s.space_id))
            full = " · FULL" if snap.is_structurally_full else ""
            with st.expander(f"{labels[s.id]} · {snap.structural_count}/{snap.capacity}{full}"):
                enrolled = st.multiselect(
                    "Fixed roster",
                    options=[p.id for p in people],
                    default=[pid for pid in s.person_ids if pid in by_person],
                    format_func=lambda pid: by_person[pid].name,
                    key=f"roster_{s.id}",
                )
                if st.button("Save roster", key=f"save_roster_{s.id}"):
                    if run_action(lambda: store.enroll_people(s.id, enrolled), "Roster saved."):
                        st.rerun()

                st.markdown("**Waitlist**")
                for entry in s.waitlist:
                    if entry.is_prospect:
                        label = f"{entry.prospect.name} · {entry.prospect.phone} (new contact)"
                    elif entry.person_id in by_person:
                        label = by_person[entry.person_id].name
                    else:
                        continue
                    c1, c2 = st.columns([3, 1])
                    c1.write(f"- {label}")
                    if c2.button("Remove", key=f"wl_remove_{entry.id}"):
                        store.remove_from_waitlist(s.id, entry.id)
                        st.rerun()
                wl_person = st.selectbox(
                    "Add person to waitlist",
                    ["(none)"] + [p.id for p in people if p.id not in s.person_ids],
                    format_func=lambda pid: pid if pid == "(none)" else by_person[pid].name,
                    key=f"wl_person_{s.id}",
                )
                c1, c2 = st.columns(2)
                wl_name = c1.text_input("or new contact name", key=f"wl_name_{s.id}")
                wl_phone = c2.text_input("phone", key=f"wl_phone_{s.id}")
                if st.button("Add to waitlist", key=f"wl_add_{s.id}"):
                    if wl_person != "(none)":
                        ok = run_action(lambda: store.add_to_waitlist(s.id, person_id=wl_person), "Added to waitlist.")
                    else:
                        prospect = WaitlistProspect(name=wl_name, phone=wl_phone)
                        ok = run_action(lambda: store.add_to_waitlist(s.id, prospect=prospect), "Added to waitlist.")
                    if ok:
                        st.rerun()

                st.markdown("**Reschedule**")
                m1, m2, m3 = st.columns(3)
                move_space = m1.selectbox(
                    "Space", list(spaces), index=list(spaces).index(s.space_id) if s.space_id in spaces else 0,
                    format_func=lambda sid: spaces[sid].name, key=f"move_space_{s.id}",
                )
                move_day = m2.selectbox(
                    "Day", DAYS_OF_WEEK, index=DAYS_OF_WEEK.index(s.day_of_week), key=f"move_day_{s.id}"
                )
                move_time = m3.text_input("Time", value=s.time, key=f"move_time_{s.id}")
                if st.button("Save schedule", key=f"move_{s.id}"):
                    ok = run_action(
                        lambda: store.update_session(
                            s.id, s.activity_id, s.instructor_id, move_space, move_day, move_time, s.level_id
                        ),
                        "Session updated.",
                    )
                    if ok:
                        st.rerun()

                if st.button("Delete session", key=f"del_session_{s.id}"):
                    if run_action(lambda: store.delete_session(s.id), "Session deleted."):
                        st.rerun()

    st.divider()
    st.subheader("➕ Add Session")
    activities = {a.name: a.id for a in store.load_activities()}
    instructors = {i.name: i.id for i in store.load_instructors()}
    space_opts = {f"{sp.name} (cap {sp.capacity})": sp.id for sp in spaces.values()}
    if not (activities and space_opts):
        st.info("Add at least one activity and one space first (Catalog).")
        return
    c1, c2, c3 = st.columns(3)
    with c1:
        activity = st.selectbox("Activity", list(activities))
        instructor = st.selectbox("Instructor", ["(none)"] + list(instructors))
    with c2:
        space = st.selectbox("Space", list(space_opts))
        day = st.selectbox("Day", DAYS_OF_WEEK)
    with c3:
        time = st.text_input("Time (HH:MM)", value="18:00")
    if st.button("Create session", type="primary"):
        ok = run_action(
            lambda: store.add_session(
                activities[activity], instructors.get(instructor), space_opts[space], day, time
            ),
            "Session created.",
        )
        if ok:
            st.rerun()


def attendance_page():
    st.header("✅ Attendance")

    people, sessions, attendance, spaces = load_snapshot()
    if not sessions:
        st.info("No sessions yet.")
        return
    labels = session_labels(sessions)
    by_person = {p.id: p for p in people}

    session_id = st.selectbox("Session", list(labels), format_func=lambda sid: labels[sid])
    session = next(s for s in sessions if s.id == session_id)
    day = st.date_input("Class date", value=date.today())
    if DAYS_OF_WEEK[day.weekday()] != session.day_of_week:
        st.warning(f"This session runs on {session.day_of_week}.")

    snap = occupancy.compute_daily_occupancy(session, day, people, attendance, spaces.get(session.space_id))
    if snap.is_cancelled:
        st.warning(f"This class is cancelled on {snap.date}.")
        return
    st.write(
        f"Occupancy **{snap.daily_occupancy}/{snap.capacity}** · "
        f"on vacation: {', '.join(p.name for p in snap.vacationing_people) or '-'} · "
        f"one-time: {', '.join(p.name for p in snap.one_time_attendees) or '-'}"
    )

    choices = {
        "present": "fixed-present",
        "absent": "fixed-absent",
        "justified": "fixed-justified-absent",
    }
    marks = {}
    for person in snap.active_fixed_people:
        status = occupancy.attendance_status(session, day, person.id, people, attendance)
        current = next((k for k, v in choices.items() if v == status), "present")
        marks[person.id] = st.radio(
            person.name, list(choices), index=list(choices).index(current),
            horizontal=True, key=f"mark_{session.id}_{person.id}",
        )
    if marks and st.button("Save attendance", type="primary"):
        ok = run_action(
            lambda: store.save_attendance(
                session.id, day,
                [pid for pid, m in marks.items() if m == "present"],
                [pid for pid, m in marks.items() if m == "absent"],
                [pid for pid, m in marks.items() if m == "justified"],
            ),
            "Attendance saved.",
        )
        if ok:
            st.rerun()

    with st.expander("Cancel this class for the date"):
        grant = st.checkbox("Give recovery credits to the enrolled people", value=True)
        if st.button("Cancel class", key=f"cancel_{session.id}"):
            ok = run_action(
                lambda: store.cancel_session_for_day(session.id, day, grant_credits=grant),
                "Class cancelled.",
            )
            if ok:
                st.rerun()

    st.divider()
    st.subheader("Recovery class (one-time attendee)")
    eligible = occupancy.eligible_for_recovery(people, attendance)
    if not eligible:
        st.caption("Nobody has recovery credits left.")
        return
    balances = occupancy.recovery_balances(people, attendance)
    pid = st.selectbox(
        "Person with credits", [p.id for p in eligible],
        format_func=lambda i: f"{by_person[i].name} ({balances[i]} credit(s))",
    )
    problems = occupancy.check_one_time_booking(
        session, day, pid, people, attendance, spaces.get(session.space_id)
    )
    for msg in problems:
        st.warning(msg)
    if st.button("Book recovery", disabled=bool(problems)):
        if run_action(lambda: store.add_one_time_attendee(session.id, pid, day), "Recovery booked."):
            st.rerun()


def payments_page():
    st.header("💳 Payments")

    people = store.load_people()
    if not people:
        st.info("No people yet. Add a person first.")
        return

    options = person_options(people)
    default_id = st.session_state.get("payments_person_id", people[0].id)
    labels = list(options)
    default_index = list(options.values()).index(default_id) if default_id in options.values() else 0
    chosen = st.selectbox("Person", labels, index=default_index)
    person_id = options[chosen]
    st.session_state.payments_person_id = person_id
    person = next(p for p in people if p.id == person_id)

    pay_status, overdue = utils.payment_status(person)
    st.write(
        f"Next due: **{person.last_payment_date or '-'}** | Status: **{pay_status}**"
        + (f" ({overdue} days)" if overdue else "")
        + f" | Outstanding months: **{person.outstanding_payments}**"
    )

    c1, c2, c3 = st.columns(3)
    with c1:
        if st.button("Record payment", type="primary"):
            if run_action(lambda: store.record_payment(person_id), "Payment recorded."):
                st.rerun()
    with c2:
        if st.button("Revert last payment"):
            if run_action(lambda: store.revert_last_payment(person_id), "Last payment reverted."):
                st.rerun()
    with c3:
        outstanding = st.number_input("Outstanding months", min_value=0, value=person.outstanding_payments)
        if st.button("Update outstanding"):
            if run_action(lambda: store.set_outstanding_payments(person_id, int(outstanding)), "Updated."):
                st.rerun()

    st.divider()
    st.subheader("Payment history")
    payments = store.load_payments(person_id)
    if payments:
        st.dataframe(pd.DataFrame([p.__dict__ for p in payments]), use_container_width=True, hide_index=True)
    else:
        st.caption("No payments for this person yet.")

    st.divider()
    st.subheader("Revenue summary by month")
    st.dataframe(utils.revenue_summary_by_month(), use_container_width=True, hide_index=True)


def catalog_page():
    st.header("🗂️ Catalog")

    tab_t, tab_s, tab_a, tab_i, tab_l = st.tabs(["Tariffs", "Spaces", "Activities", "Instructors", "Levels"])

    with tab_t:
        tariffs = store.load_tariffs()
        st.dataframe(pd.DataFrame([t.__dict__ for t in tariffs]), use_container_width=True, hide_index=True)
        c1, c2, c3 = st.columns(3)
        name = c1.text_input("Name", key="tariff_name")
        price = c2.text_input("Price", value="300", key="tariff_price")
        freq = c3.text_input("Classes per week (optional)", key="tariff_freq")
        editing = st.selectbox("Tariff to edit", ["(new)"] + [t.name for t in tariffs], key="tariff_edit")
        if editing == "(new)" and st.button("Add tariff"):
            if run_action(lambda: store.add_tariff(name, price, freq or None), "Tariff added."):
                st.rerun()
        elif editing != "(new)" and st.button("Update tariff"):
            tariff_id = next(t.id for t in tariffs if t.name == editing)
            if run_action(lambda: store.update_tariff(tariff_id, name, price, freq or None), "Tariff updated."):
                st.rerun()
        delete_entity_control("tariff", {t.name: t.id for t in tariffs})

    with tab_s:
        spaces = store.load_spaces()
        st.dataframe(pd.DataFrame([s.__dict__ for s in spaces]), use_container_width=True, hide_index=True)
        c1, c2 = st.columns(2)
        name = c1.text_input("Name", key="space_name")
        capacity = c2.number_input("Capacity", min_value=1, value=10, key="space_cap")
        editing = st.selectbox("Space to edit", ["(new)"] + [s.name for s in spaces], key="space_edit")
        if editing == "(new)" and st.button("Add space"):
            if run_action(lambda: store.add_space(name, capacity), "Space added."):
                st.rerun()
        elif editing != "(new)" and st.button("Update space"):
            space_id = next(s.id for s in spaces if s.name == editing)
            if run_action(lambda: store.update_space(space_id, name, capacity), "Space updated."):
                st.rerun()
        delete_entity_control("space", {s.name: s.id for s in spaces})

    with tab_a:
        activities = store.load_activities()
        st.write(", ".join(a.name for a in activities) or "No activities yet.")
        name = st.text_input("Name", key="activity_name")
        if st.button("Add activity"):
            if run_action(lambda: store.add_activity(name), "Activity added."):
                st.rerun()
        delete_entity_control("activity", {a.name: a.id for a in activities})

    with tab_i:
        instructors = store.load_instructors()
        activities = {a.id: a.name for a in store.load_activities()}
        st.dataframe(
            pd.DataFrame([
                {"id": i.id, "name": i.name, "phone": i.phone,
                 "activities": ", ".join(activities.get(a, "") for a in i.activity_ids)}
                for i in instructors
            ]),
            use_container_width=True, hide_index=True,
        )
        c1, c2 = st.columns(2)
        name = c1.text_input("Name", key="instructor_name")
        phone = c2.text_input("Phone", key="instructor_phone")
        teaches = st.multiselect("Activities", list(activities), format_func=lambda a: activities[a])
        if st.button("Add instructor"):
            if run_action(lambda: store.add_instructor(name, phone, teaches), "Instructor added."):
                st.rerun()
        delete_entity_control("instructor", {i.name: i.id for i in instructors})

    with tab_l:
        levels = store.load_levels()
        st.write(", ".join(lv.name for lv in levels) or "No levels yet.")
        name = st.text_input("Name", key="level_name")
        if st.button("Add level"):
            if run_action(lambda: store.add_level(name), "Level added."):
                st.rerun()
        delete_entity_control("level", {lv.name: lv.id for lv in levels})


def delete_entity_control(kind: str, options: dict):
    if not options:
        return
    c1, c2 = st.columns([3, 1])
    label = c1.selectbox(f"Delete {kind}", list(options), key=f"del_{kind}")
    if c2.button("Delete", key=f"del_btn_{kind}"):
        if run_action(lambda: store.delete_with_usage_check(kind, options[label]), f"{kind.capitalize()} deleted."):
            st.rerun()


def settings_page():
    st.header("⚙️ Settings")

    name = st.text_input("Studio name", value=db.get_setting("studio_name", "My Studio"))
    if st.button("Save", type="primary"):
        db.set_setting("studio_name", name.strip() or "My Studio")
        st.success("Saved.")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert a small sample studio for testing (adds new rows each run).")
    if st.button("Insert sample data"):
        if run_action(store.insert_sample_data, "Sample data inserted."):
            st.rerun()


def main_app():
    st.sidebar.title(f"🧘 {db.get_setting('studio_name', 'Studio')}")

    pages = {
        "Today": today_page,
        "People": people_page,
        "Sessions": sessions_page,
        "Attendance": attendance_page,
        "Payments": payments_page,
        "Catalog": catalog_page,
        "Settings": settings_page,
    }
    names = list(pages)
    if "page" not in st.session_state:
        st.session_state.page = "Today"
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))
    pages[st.session_state.page]()


# --------- App entry ---------

def run():
    init_once()
    main_app()


if __name__ == "__main__":
    run()
