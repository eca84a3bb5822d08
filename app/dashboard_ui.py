"""
dashboard_ui.py — Server & Client Control Dashboard
----------------------------------------------------

This Streamlit page is the operator's main console for server-based deployments.
It provides:

- Header counters (servers, clients, connected servers)
- Adding servers and clients with an optional starting location
- Per-server controls: server location request, location edit and map, refresh, reset, delete
- Per-client cards: connect, locate, instant and scheduled recordings, transmit,
  scheduled recordings table and data history with species predictions

Unit state is re-read every few seconds; command feedback comes from the
hardware's acknowledgements through the status trackers.

Dependencies:
- Streamlit for UI
- Folium for location maps
- SQLAlchemy via core.devices

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import streamlit as st
from config.settings import MAX_UNITS, REFRESH_INTERVAL_SEC
from core import devices
from core.predictions import ClientFolder
from core.status import (
    client_tracker, server_location_tracker, client_view, server_view,
    is_unit_busy, recording_client, client_disabled, server_mode_label, SUCCESS
)
from tools.identifiers import available_unit_numbers, display_name, extract_unit_num
from tools.ui_widgets import (
    status_memory, render_status_card, location_inputs, location_editor, location_link, location_map,
    command_inputs, confirm_delete, send_command, scheduled_records_table, data_history, client_folders
)


# --- Expandable Page Overview ---
with st.expander("Show/Hide Dashboard Guide", expanded=False):
    st.write(
        """
        Servers relay commands to their clients over the field network.

        **Commands:**
        1. **Connect** checks the link between a server and one client
        2. **Get Location** asks the client (or server) for a GPS fix
        3. **Instant** records now for the given minutes and uploads the files
        4. **Schedule** books a recording; once it is *ready_to_transmit* press **Transmit**

        A server runs one command at a time; client buttons are locked while it is busy.
        """
    )


# --- Header Stats ---
stats = devices.dashboard_stats()
col1, col2, col3 = st.columns(3)
col1.metric("Servers", stats["servers"])
col2.metric("Clients", stats["clients"])
col3.metric("System Status", "Online" if stats["connected"] else "Idle",
            f"{stats['connected']} connected" if stats["connected"] else None)


# --- Add Server ---
with st.expander("➕ Add Server"):
    existing = [s["server_id"] for s in devices.list_servers()]
    numbers = available_unit_numbers(existing, MAX_UNITS)
    if not numbers:
        st.info("All server slots are in use.")
    else:
        with st.form("add_server_form", clear_on_submit=True):
            number = st.selectbox("Server number", numbers, format_func=lambda n: f"Server {n}")
            st.caption("Location (optional)")
            raw_location = location_inputs("add_server")
            if st.form_submit_button("Add Server"):
                try:
                    location = devices.parse_location(*raw_location)
                    server_id = devices.create_server(number, location)
                except ValueError as e:
                    st.error(str(e))
                except Exception as e:
                    st.error(f"Failed to add server: {e}")
                else:
                    st.success(f"{display_name(server_id)} added.")
                    st.rerun()


def client_card(server, client_id):
    """
    One client's controls, status card, scheduled recordings and data history.
    """
    server_id = server["server_id"]
    client = server["clients"][client_id]
    info = client["client_info"]
    key = f"{server_id}_{client_id}"

    tracker = client_tracker(server_id, client_id, status_memory())
    card = tracker.evaluate(client_view(server, client_id))
    disabled = client_disabled(server, client_id)
    active = server["mode"].get("target_client_id") == client_id and is_unit_busy(server["mode"])

    with st.container(border=True):
        head1, head2 = st.columns([3, 1])
        head1.markdown(f"#### 📡 {client['name']}")
        head2.markdown("🟢 Active" if active else "⚪ Standby")
        st.markdown(location_link(info["lat"], info["long"], info["location_name"]))

        render_status_card(card, server["active_status"])

        b1, b2 = st.columns(2)
        if b1.button("🔗 Connect", key=f"{key}_connect", disabled=disabled, use_container_width=True):
            send_command(tracker, "connect", devices.connect_client, server_id, client_id)
        if b2.button("📍 Get Location", key=f"{key}_locate", disabled=disabled, use_container_width=True):
            send_command(tracker, "location", devices.request_client_location, server_id, client_id)

        command_inputs(
            key,
            disabled,
            lambda seconds: send_command(tracker, "instant", devices.instant_record_client,
                                         server_id, client_id, seconds),
            lambda seconds, schedule_key: send_command(tracker, "schedule", devices.schedule_client_record,
                                                       server_id, client_id, seconds, schedule_key,
                                                       schedule_key=schedule_key),
        )

        with st.expander("📅 Scheduled Recordings"):
            scheduled_records_table(
                client["scheduled_records"],
                key,
                lambda schedule_key: send_command(tracker, "transmit", devices.transmit_scheduled_record,
                                                  server_id, client_id, schedule_key, schedule_key=schedule_key),
                disabled=disabled,
            )

        with st.expander("📂 Data History"):
            folders = client_folders(extract_unit_num(server_id), extract_unit_num(client_id))
            data_history(ClientFolder(server_id, client_id), folders, key)

        with st.expander("⚙️ Client Settings"):
            location_editor(f"{key}_edit", info,
                            lambda location: devices.update_client_location(server_id, client_id, location))
            s1, s2 = st.columns(2)
            with s1:
                if st.button("♻️ Reset Client", key=f"{key}_reset"):
                    try:
                        devices.reset_client(server_id, client_id)
                    except Exception as e:
                        st.error(f"Reset failed: {e}")
                    else:
                        st.rerun()
            with s2:
                confirm_delete(f"{key}_del", client["name"], lambda: devices.delete_client(server_id, client_id))


@st.fragment(run_every=REFRESH_INTERVAL_SEC)
def server_section(server_id):
    server = devices.get_server_snapshot(server_id)
    if server is None:
        st.warning(f"{display_name(server_id)} no longer exists.")
        return

    info = server["server_info"]
    busy = is_unit_busy(server["mode"])
    location_tracker = server_location_tracker(server_id, status_memory())
    location_card = location_tracker.evaluate(server_view(server))

    with st.container(border=True):
        head1, head2, head3 = st.columns([3, 2, 1])
        head1.subheader(f"🖥️ {server['name']}")
        label = server_mode_label(server["mode"], recording_client(server),
                                  location_card.show and location_card.kind == SUCCESS)
        if label:
            head2.markdown(
                f"<span style='background:#f59e0b33;color:#b45309;padding:4px 10px;border-radius:8px;"
                f"font-size:0.8rem;font-weight:600'>{label}</span>",
                unsafe_allow_html=True,
            )
        head3.markdown("🟢 Connected" if server["connection_status"] else "🔴 Offline")

        st.markdown(location_link(info["server_lat"], info["server_long"], info["server_location_name"]))
        render_status_card(location_card)

        b1, b2, b3 = st.columns(3)
        if b1.button("📍 Server Location", key=f"{server_id}_loc", disabled=busy, use_container_width=True):
            send_command(location_tracker, "server_location", devices.request_server_location, server_id)
        if b2.button("🔄 Refresh", key=f"{server_id}_refresh", use_container_width=True):
            devices.refresh_server_data(server_id)
            st.rerun()
        if b3.button("♻️ Reset Server", key=f"{server_id}_reset", use_container_width=True):
            try:
                devices.reset_server(server_id)
            except Exception as e:
                st.error(f"Reset failed: {e}")
            else:
                st.rerun()

        with st.expander("🗺️ Location & Map"):
            if st.toggle("Show map", key=f"{server_id}_map_on"):
                location_map(info["server_lat"], info["server_long"], info["server_location_name"],
                             key=f"{server_id}_map")
            location_editor(f"{server_id}_edit", info,
                            lambda location: devices.update_server_location(server_id, location),
                            name_field="server_location_name", lat_field="server_lat", long_field="server_long")

        with st.expander("➕ Add Client"):
            numbers = available_unit_numbers(list(server["clients"]), MAX_UNITS)
            if not numbers:
                st.info("All client slots are in use.")
            else:
                with st.form(f"{server_id}_add_client", clear_on_submit=True):
                    number = st.selectbox("Client number", numbers, format_func=lambda n: f"Client {n}")
                    st.caption("Location (optional)")
                    raw_location = location_inputs(f"{server_id}_add_client")
                    if st.form_submit_button("Add Client"):
                        try:
                            location = devices.parse_location(*raw_location)
                            devices.create_client(server_id, number, location)
                        except ValueError as e:
                            st.error(str(e))
                        except Exception as e:
                            st.error(f"Failed to add client: {e}")
                        else:
                            st.rerun()

        if not server["clients"]:
            st.caption("No clients yet.")
        for client_id in server["clients"]:
            client_card(server, client_id)

        confirm_delete(f"{server_id}_del", server["name"], lambda: devices.delete_server(server_id))


# --- Server Sections ---
servers = devices.list_servers()
if not servers:
    st.info("No servers yet. Add one above to get started.")
for snapshot in servers:
    server_section(snapshot["server_id"])
